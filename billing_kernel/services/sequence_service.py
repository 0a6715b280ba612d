"""
SequenceService -- monotonic document-number allocation via counter rows.

Responsibility:
    Provides strictly increasing sequence numbers per document kind
    (quotation, invoice, credit note, supplier bill) and formats them as
    ``<prefix>-<zero padded value>``.  A dedicated counter table is locked
    per call (``SELECT ... FOR UPDATE`` where the database supports it).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the sales and payables stores when a document is first saved.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of truth for
      the next value; never aggregate-max-plus-one over document tables.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: two sessions creating the same counter row for the
      first time.  Propagates to the caller, whose transaction is rolled back.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from billing_kernel.db.base import Base
from billing_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "quotation", "invoice")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


def format_document_number(prefix: str, value: int, padding: int) -> str:
    """``format_document_number("INV", 42, 6) -> "INV-000042"``."""
    return f"{prefix}-{value:0{padding}d}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    QUOTATION = "quotation"
    INVOICE = "invoice"
    CREDIT_NOTE = "credit_note"
    SUPPLIER_BILL = "supplier_bill"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for this sequence name.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(
        self,
        sequence_name: str,
        prefix: str,
        padding: int = 6,
    ) -> str:
        """Allocate the next value and format it as a document number."""
        return format_document_number(prefix, self.next_value(sequence_name), padding)

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: tests and data-migration scripts only.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()
