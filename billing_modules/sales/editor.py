"""
DocumentEditor -- the in-memory working copy of a quotation or invoice.

Responsibility:
    Owns one ``Document`` and applies operator edits to it.  Every edit
    ends with a full recomputation in a fixed order:

        1. line pricing   (reprice every line from its inputs)
        2. discount       (document discount onto non-overridden lines)
        3. totals         (from the full line tuple)
        4. balance        (rebase paid / remaining onto the new gross)

    so the working copy is always internally consistent, whatever order
    the edits arrive in.

Architecture position:
    Modules layer.  Pure in-memory state; the only outside calls are the
    read-only catalog and customer lookups.  Nothing is persisted until
    ``SalesService.save_document`` is called; discarding an editor has no
    side effects.

Invariants enforced:
    - A manual price edit (ex or inc) marks the line overridden; a
      discount change then leaves that line alone until a product is
      (re)bound to it.
    - The document keeps at least one line.
    - amount_paid + balance_remaining == gross_total after every edit
      (``assert_reconciled``).
    - Customer selection never overwrites a discount or previous balance
      the operator has typed.

Failure modes:
    - ``LineNotFoundError`` -- edit addressed to an unknown line id.
    - ``ProductNotFoundError`` / ``CustomerNotFoundError`` -- lookups miss.
    - ``BalanceDriftError`` -- programming fault in the balance engine.
    - ``DocumentLockedError`` -- edit on a CONVERTED quotation or VOID invoice.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import date
from decimal import Decimal
from uuid import UUID

from billing_engines.balance import (
    DEFAULT_TOLERANCE,
    assert_reconciled,
    edit_amount_paid as balance_edit_amount_paid,
    edit_balance_remaining as balance_edit_balance_remaining,
    gross_total_for,
    rebase,
)
from billing_engines.discount import propagate_discount
from billing_engines.line_pricing import LineItem, ex_from_inclusive, reprice
from billing_engines.settlement import InvoiceStatus
from billing_engines.totals import compute_totals
from billing_engines.uom import (
    DEFAULT_KG_PER_BAG,
    DEFAULT_UNITS_PER_BOX,
    BoxQuantity,
    Uom,
    quantity_for,
    switch_uom,
    with_per_container,
    with_raw,
)
from billing_kernel.domain.values import (
    MAX_INPUT,
    PRECISE_PRICE_PLACES,
    ZERO,
    clamp_percent,
    coerce_non_negative,
    coerce_price,
    round_money,
    round_to,
)
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    DocumentLockedError,
    LineNotFoundError,
    ProductNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_modules.sales.models import Document, DocumentKind, QuotationStatus
from billing_modules.sales.ports import CustomerDirectory, ProductCatalog, ProductInfo

logger = get_logger("modules.sales.editor")


class DocumentEditor:
    """Interactive working copy of one quotation or invoice."""

    def __init__(
        self,
        document: Document,
        *,
        catalog: ProductCatalog | None = None,
        customers: CustomerDirectory | None = None,
        default_kg_per_bag: Decimal = DEFAULT_KG_PER_BAG,
        balance_tolerance: Decimal = DEFAULT_TOLERANCE,
        discount_touched: bool = False,
        balance_touched: bool = False,
    ):
        self._catalog = catalog
        self._customers = customers
        self._default_kg_per_bag = default_kg_per_bag
        self._tolerance = balance_tolerance
        self._discount_touched = discount_touched
        self._balance_touched = balance_touched
        self._catalog_prices: dict[str, Decimal] = {}
        self._units_per_box: dict[str, Decimal] = {}

        if not document.lines:
            document = replace(document, lines=(self._blank_line(document),))
        self._document = document
        self.recompute()

    @classmethod
    def new(
        cls,
        kind: DocumentKind,
        *,
        date_issued: date | None = None,
        vat_percent_default: Decimal = Decimal("15"),
        customer_id: str | None = None,
        valid_until: date | None = None,
        **kwargs,
    ) -> "DocumentEditor":
        """Start a blank quotation (DRAFT) or invoice (ISSUED)."""
        status = (
            QuotationStatus.DRAFT if kind is DocumentKind.QUOTATION else InvoiceStatus.ISSUED
        )
        document = Document(
            kind=kind,
            date_issued=date_issued,
            customer_id=customer_id,
            vat_percent_default=clamp_percent(vat_percent_default, "vat_percent_default"),
            valid_until=valid_until if kind is DocumentKind.QUOTATION else None,
            status=status,
        )
        return cls(document, **kwargs)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def document(self) -> Document:
        return self._document

    @property
    def document_id(self) -> UUID:
        return self._document.id

    @property
    def discount_touched(self) -> bool:
        return self._discount_touched

    @property
    def balance_touched(self) -> bool:
        return self._balance_touched

    def line(self, line_id: UUID) -> LineItem:
        return self._document.lines[self._index(line_id)]

    def snapshot(self) -> Document:
        """Fully-resolved copy of the working document."""
        return self.recompute()

    def mark_saved(self, document_number: str, **lifecycle) -> Document:
        """Adopt the stored number and lifecycle fields after a save."""
        self._document = replace(self._document, document_number=document_number, **lifecycle)
        return self._document

    # =========================================================================
    # Recomputation
    # =========================================================================

    def recompute(self) -> Document:
        doc = self._document
        lines = tuple(reprice(line) for line in doc.lines)
        lines = propagate_discount(lines, doc.discount_percent, self._catalog_prices)
        totals = compute_totals(lines)
        gross = gross_total_for(totals.total_amount, doc.previous_balance)
        state = rebase(doc.balance_state, gross)
        assert_reconciled(state, self._tolerance)

        self._document = replace(
            doc,
            lines=lines,
            subtotal=totals.subtotal,
            vat_amount=totals.vat_amount,
            total_amount=totals.total_amount,
            discount_amount=totals.discount_amount,
            amount_paid=state.amount_paid,
            balance_remaining=state.balance_remaining,
            balance_authority=state.authority,
        )
        logger.debug(
            "document_recomputed",
            extra={
                "document_id": str(doc.id),
                "line_count": totals.line_count,
                "total_amount": str(totals.total_amount),
                "balance_remaining": str(state.balance_remaining),
            },
        )
        return self._document

    def _check_editable(self) -> None:
        if self._document.is_locked:
            raise DocumentLockedError(self._document.id, self._document.status.value)

    def _update(self, **changes) -> Document:
        self._check_editable()
        self._document = replace(self._document, **changes)
        return self.recompute()

    def _index(self, line_id: UUID) -> int:
        for i, line in enumerate(self._document.lines):
            if line.id == line_id:
                return i
        raise LineNotFoundError(self._document.id, line_id)

    def _edit_line(self, line_id: UUID, change: Callable[[LineItem], LineItem]) -> Document:
        i = self._index(line_id)
        lines = list(self._document.lines)
        lines[i] = change(lines[i])
        return self._update(lines=tuple(lines))

    def _blank_line(self, document: Document, uom: Uom = Uom.BOX) -> LineItem:
        return LineItem(
            quantity=quantity_for(uom, ZERO, default_kg_per_bag=self._default_kg_per_bag),
            vat_rate_percent=document.vat_percent_default,
        )

    # =========================================================================
    # Lines
    # =========================================================================

    def add_line(self, uom: Uom | str = Uom.BOX) -> UUID:
        """Append a placeholder line; returns its id."""
        line = self._blank_line(self._document, uom)
        self._update(lines=self._document.lines + (line,))
        return line.id

    def remove_line(self, line_id: UUID) -> Document:
        """Remove a line.  Removing the last line leaves one blank line."""
        i = self._index(line_id)
        lines = self._document.lines[:i] + self._document.lines[i + 1:]
        if not lines:
            lines = (self._blank_line(self._document),)
        return self._update(lines=lines)

    def _product(self, product_id: str) -> ProductInfo:
        product = self._catalog.get_product(product_id) if self._catalog else None
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    def _default_units_per_box(self, line: LineItem) -> Decimal:
        if line.product_id is None:
            return DEFAULT_UNITS_PER_BOX
        if line.product_id not in self._units_per_box and self._catalog is not None:
            product = self._catalog.get_product(line.product_id)
            if product is not None:
                self._units_per_box[product.product_id] = product.default_units_per_box
        return self._units_per_box.get(line.product_id, DEFAULT_UNITS_PER_BOX)

    def bind_product(self, line_id: UUID, product_id: str) -> Document:
        """Bind a catalog product: base price, units per box, code and name.

        Clears any manual price override so the document discount applies.
        """
        self._check_editable()
        product = self._product(product_id)
        price = coerce_price(product.base_price_ex_vat, "base_price_ex_vat")
        self._catalog_prices[product.product_id] = price
        self._units_per_box[product.product_id] = product.default_units_per_box

        def bind(line: LineItem) -> LineItem:
            quantity = line.quantity
            if isinstance(quantity, BoxQuantity):
                quantity = with_per_container(quantity, product.default_units_per_box)
            return replace(
                line,
                product_id=product.product_id,
                quantity=quantity,
                base_unit_price_ex_vat=price,
                unit_price_ex_vat=price,
                price_overridden=False,
                item_code=product.display_code,
                description=product.display_name,
            )

        result = self._edit_line(line_id, bind)
        logger.info(
            "line_product_bound",
            extra={
                "document_id": str(self._document.id),
                "line_id": str(line_id),
                "product_id": product.product_id,
                "base_price_ex_vat": str(price),
            },
        )
        return result

    def unbind_product(self, line_id: UUID) -> Document:
        """Turn a line back into a placeholder."""
        return self._edit_line(
            line_id,
            lambda line: replace(line, product_id=None, price_overridden=False, item_code=""),
        )

    def set_quantity(self, line_id: UUID, raw: object) -> Document:
        return self._edit_line(
            line_id, lambda line: replace(line, quantity=with_raw(line.quantity, raw))
        )

    def set_units_per_container(self, line_id: UUID, value: object) -> Document:
        """Units per box (BOX) or kg per bag (BAG); ignored for other UOMs."""
        return self._edit_line(
            line_id,
            lambda line: replace(line, quantity=with_per_container(line.quantity, value)),
        )

    def change_uom(self, line_id: UUID, uom: Uom | str) -> Document:
        """Switch UOM; quantity restarts at zero with the new UOM's defaults."""
        def change(line: LineItem) -> LineItem:
            quantity = switch_uom(
                line.quantity,
                uom,
                default_units_per_box=self._default_units_per_box(line),
                default_kg_per_bag=self._default_kg_per_bag,
            )
            return replace(line, quantity=quantity)

        return self._edit_line(line_id, change)

    # =========================================================================
    # Prices and VAT
    # =========================================================================

    def set_unit_price_ex_vat(self, line_id: UUID, value: object) -> Document:
        ex = round_to(coerce_price(value), PRECISE_PRICE_PLACES)
        return self._edit_line(
            line_id,
            lambda line: replace(line, unit_price_ex_vat=ex, price_overridden=True),
        )

    def set_unit_price_inc_vat(self, line_id: UUID, value: object) -> Document:
        """Back-solve ex-VAT from an inclusive entry at the line's rate."""
        return self._edit_line(
            line_id,
            lambda line: replace(
                line,
                unit_price_ex_vat=ex_from_inclusive(value, line.vat_rate_percent),
                price_overridden=True,
            ),
        )

    def set_line_vat_rate(self, line_id: UUID, rate: object) -> Document:
        vat = clamp_percent(rate, "vat_rate_percent")
        return self._edit_line(line_id, lambda line: replace(line, vat_rate_percent=vat))

    def set_discount_percent(self, percent: object) -> Document:
        self._discount_touched = True
        return self._update(discount_percent=clamp_percent(percent, "discount_percent"))

    def set_default_vat_percent(self, percent: object, propagate: bool = True) -> Document:
        """Change the document VAT default; by default every line follows."""
        vat = clamp_percent(percent, "vat_percent_default")
        lines = self._document.lines
        if propagate:
            lines = tuple(replace(line, vat_rate_percent=vat) for line in lines)
        logger.info(
            "default_vat_changed",
            extra={
                "document_id": str(self._document.id),
                "vat_percent_default": str(vat),
                "propagate": propagate,
            },
        )
        return self._update(vat_percent_default=vat, lines=lines)

    # =========================================================================
    # Customer and balance
    # =========================================================================

    def select_customer(self, customer_id: str | None) -> Document:
        """Select a customer, seeding discount and previous balance.

        Seeding skips any value the operator has already typed.
        """
        if customer_id is None:
            return self._update(customer_id=None)

        customer = self._customers.get_customer(customer_id) if self._customers else None
        if customer is None:
            raise CustomerNotFoundError(customer_id)

        changes: dict = {"customer_id": customer.customer_id}
        if not self._discount_touched:
            changes["discount_percent"] = clamp_percent(
                customer.default_discount_percent, "default_discount_percent"
            )
        if not self._balance_touched:
            changes["previous_balance"] = round_money(
                coerce_non_negative(customer.opening_balance, "opening_balance", limit=MAX_INPUT)
            )
        return self._update(**changes)

    def set_previous_balance(self, value: object) -> Document:
        self._balance_touched = True
        return self._update(
            previous_balance=round_money(
                coerce_non_negative(value, "previous_balance", limit=MAX_INPUT)
            )
        )

    def edit_amount_paid(self, value: object) -> Document:
        state = balance_edit_amount_paid(self._document.balance_state, value)
        return self._update(
            amount_paid=state.amount_paid,
            balance_remaining=state.balance_remaining,
            balance_authority=state.authority,
        )

    def edit_balance_remaining(self, value: object) -> Document:
        state = balance_edit_balance_remaining(self._document.balance_state, value)
        return self._update(
            amount_paid=state.amount_paid,
            balance_remaining=state.balance_remaining,
            balance_authority=state.authority,
        )

    # =========================================================================
    # Header fields
    # =========================================================================

    def set_notes(self, notes: str) -> Document:
        return self._update(notes=notes or "")

    def set_valid_until(self, valid_until: date | None) -> Document:
        return self._update(valid_until=valid_until)

    def set_date_issued(self, date_issued: date | None) -> Document:
        return self._update(date_issued=date_issued)
