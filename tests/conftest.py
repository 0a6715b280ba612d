"""
Pytest fixtures for the billing test suite.

Provides:
- Structured logging configuration and log capture
- SQLite in-memory database sessions
- Deterministic clock and settings
- Catalog / customer fixtures and line builders

Environment Variables:
- DATABASE_URL: SQLAlchemy URL for the store tests.  Defaults to an
  in-memory SQLite database.
"""

import json
import logging
import os
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from billing_config.loader import load_settings
from billing_engines.line_pricing import LineItem, reprice
from billing_engines.uom import BoxQuantity, Quantity
from billing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_modules.sales.ports import (
    CustomerInfo,
    InMemoryCustomerDirectory,
    InMemoryProductCatalog,
    ProductInfo,
)

# ORM modules register their tables on Base.metadata when imported.
import billing_kernel.services.sequence_service  # noqa: F401
import billing_modules.payables.orm  # noqa: F401
import billing_modules.sales.orm  # noqa: F401


TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, sales_service):
            sales_service.save_document(editor)
            logs = captured_logs()
            assert any(r["message"] == "document_saved" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


DEFAULT_DATABASE_URL = "sqlite:///:memory:"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh schema and session per test."""
    init_engine_from_url(get_database_url())
    create_tables()
    db_session = get_session()
    try:
        yield db_session
    finally:
        db_session.close()
        drop_tables()
        reset_engine()


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# Settings fixtures


@pytest.fixture
def settings():
    """Packaged default settings."""
    return load_settings()


# =============================================================================
# Catalog / customer fixtures
# =============================================================================


@pytest.fixture
def catalog():
    return InMemoryProductCatalog(
        [
            ProductInfo("P-100", Decimal("100.00"), Decimal("1"), "P100", "Widget"),
            ProductInfo("P-BOX", Decimal("10.00"), Decimal("12"), "PBOX", "Boxed screws"),
            ProductInfo("P-CEM", Decimal("4.50"), Decimal("1"), "CEM", "Cement per kg"),
        ]
    )


@pytest.fixture
def customers():
    return InMemoryCustomerDirectory(
        [
            CustomerInfo("C-1", "Acme Trading", Decimal("10"), Decimal("250.00")),
            CustomerInfo("C-2", "Walk-in", Decimal("0"), Decimal("0")),
        ]
    )


def make_line(
    product_id: str | None = "P-100",
    quantity: Quantity | None = None,
    unit_price_ex_vat: str = "10.00",
    vat_rate_percent: str = "15",
    **kwargs,
) -> LineItem:
    """A fully-priced line; derived fields are filled in by ``reprice``."""
    price = Decimal(unit_price_ex_vat)
    return reprice(
        LineItem(
            product_id=product_id,
            quantity=quantity if quantity is not None else BoxQuantity(Decimal("1")),
            base_unit_price_ex_vat=kwargs.pop("base_unit_price_ex_vat", price),
            unit_price_ex_vat=price,
            vat_rate_percent=Decimal(vat_rate_percent),
            **kwargs,
        )
    )


@pytest.fixture
def line_factory():
    return make_line
