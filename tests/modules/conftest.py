"""
Shared fixtures for module tests.

DESIGN RULE: Every fixture is opt-in.  No autouse.  Each test explicitly
declares which services it depends on in its function signature.
"""

import pytest

from billing_modules.payables.service import PayablesService
from billing_modules.sales.editor import DocumentEditor
from billing_modules.sales.models import DocumentKind
from billing_modules.sales.service import SalesService
from billing_modules.sales.store import SqlDocumentStore

# ---------------------------------------------------------------------------
# Well-known party ids used across module tests.
# ---------------------------------------------------------------------------

TEST_CUSTOMER_ID = "C-1"
WALK_IN_CUSTOMER_ID = "C-2"
TEST_SUPPLIER_ID = "S-1"
OTHER_SUPPLIER_ID = "S-2"


@pytest.fixture
def quotation_editor(catalog, customers):
    """Blank DRAFT quotation wired to the test catalog and customers."""
    return DocumentEditor.new(DocumentKind.QUOTATION, catalog=catalog, customers=customers)


@pytest.fixture
def sales_store(session, test_actor_id, settings):
    return SqlDocumentStore(session, numbering=settings.numbering, actor_id=test_actor_id)


@pytest.fixture
def sales_service(sales_store, catalog, customers, settings, deterministic_clock):
    return SalesService(
        sales_store,
        catalog=catalog,
        customers=customers,
        settings=settings,
        clock=deterministic_clock,
    )


@pytest.fixture
def payables_service(session, settings, deterministic_clock, test_actor_id):
    return PayablesService(
        session,
        numbering=settings.numbering,
        clock=deterministic_clock,
        actor_id=test_actor_id,
    )
