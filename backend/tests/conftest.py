"""
Pytest fixtures for posfiscal backend tests.

Provides test database setup, two tenants with complete FBR seller
profiles, catalog/sale factories, and a fake FBR gateway served through
httpx.MockTransport (no network).
"""

from datetime import datetime
from itertools import count

import httpx
import pytest
from flask import current_app

from posfiscal import create_app
from posfiscal.extensions import db
from posfiscal.models import Customer, Organization, Product, Sale, SaleLine
from posfiscal.services import fbr_config_service
from posfiscal.services.fbr_client import FbrClient, FbrEndpoints


SERVICE_TOKEN = "test-service-token"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SECRET_KEY': 'test-secret-key',
        'INTERNAL_API_TOKEN': SERVICE_TOKEN,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def service_headers():
    return {'Authorization': f'Bearer {SERVICE_TOKEN}'}


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant) with a complete seller profile."""
    org = Organization(
        name="Org A - Acme Traders",
        code="ACME",
        ntn="1234567",
        business_name="Acme Traders (Pvt) Ltd",
        province="Punjab",
        address="12 Mall Road, Lahore",
        is_active=True,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    org = Organization(
        name="Org B - Beta Stores",
        code="BETA",
        ntn="7654321",
        business_name="Beta Stores",
        province="Sindh",
        address="Shahrah-e-Faisal, Karachi",
        is_active=True,
    )
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: product with FBR data filled in unless overridden."""
    sku_counter = count(1)

    def _make(org, **overrides):
        fields = {
            "sku": f"SKU-{next(sku_counter):04d}",
            "name": "Basmati Rice 5kg",
            "price_cents": 10000,
            "tax_category": "standard_rate",
            "hs_code": "1006.3010",
            "unit_of_measure": "Numbers, pieces, units",
        }
        fields.update(overrides)
        product = Product(org_id=org.id, **fields)
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def make_sale(db_session):
    """
    Factory: finalized sale.

    lines is a list of (product, quantity) or (product, quantity, unit_price_cents)
    tuples; unit price defaults to the product price.
    """
    invoice_counter = count(1)

    def _make(org, lines, *, customer=None, total_cents=None, completed_at=None, **overrides):
        sale = Sale(
            org_id=org.id,
            customer_id=customer.id if customer else None,
            invoice_number=overrides.pop("invoice_number", f"INV-2026-{next(invoice_counter):06d}"),
            total_cents=total_cents,
            completed_at=completed_at or datetime(2026, 10, 17, 10, 30),
            **overrides,
        )
        db_session.add(sale)
        db_session.flush()

        subtotal = 0
        for entry in lines:
            product, quantity = entry[0], entry[1]
            unit_price = entry[2] if len(entry) > 2 else product.price_cents
            db_session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=unit_price * quantity,
            ))
            subtotal += unit_price * quantity
        sale.subtotal_cents = subtotal
        db_session.commit()
        return sale

    return _make


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    customer = Customer(
        org_id=org_a.id,
        name="Faisal Enterprises",
        ntn_cnic="3520212345678",
        province="Punjab",
        address="Gulberg III, Lahore",
        registration_type="Registered",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def fbr_config_a(db_session, org_a):
    """Active sandbox FBR configuration for Organization A."""
    return fbr_config_service.configure_tenant(org_a.id, bearer_token="sandbox-token-abcd1234")


class FakeFbrGateway:
    """
    Scriptable stand-in for the FBR gateway.

    Requests are classified as "validate", "submit" or the reference
    endpoint name. Unscripted validate/submit calls succeed; scripted
    responses (httpx.Response or an exception to raise) are consumed in order.
    """

    def __init__(self):
        self.requests = []
        self._scripted = {}
        self._issued = count(1)
        self.transport = httpx.MockTransport(self._handle)

    def script(self, operation, *responses):
        self._scripted.setdefault(operation, []).extend(responses)

    def calls(self, operation):
        return [request for op, request in self.requests if op == operation]

    def reject(self, operation, code, message="Invalid data", status_code=200):
        """Script an FBR business rejection (HTTP 200 with a non-00 status by default)."""
        self.script(operation, httpx.Response(status_code, json={
            "validationResponse": {
                "statusCode": "01",
                "status": "Invalid",
                "errorCode": code,
                "error": message,
            },
        }))

    @staticmethod
    def _operation(path):
        last = path.rstrip("/").rsplit("/", 1)[-1]
        if last.startswith("validateinvoicedata"):
            return "validate"
        if last.startswith("postinvoicedata"):
            return "submit"
        return last

    def _handle(self, request):
        operation = self._operation(request.url.path)
        self.requests.append((operation, request))

        scripted = self._scripted.get(operation)
        if scripted:
            outcome = scripted.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        if operation == "validate":
            return httpx.Response(200, json={"validationResponse": {"statusCode": "00", "status": "Valid"}})
        if operation == "submit":
            return httpx.Response(200, json={
                "invoiceNumber": f"7000007DI{next(self._issued):010d}",
                "dated": "2026-10-17 10:31:05",
                "validationResponse": {"statusCode": "00", "status": "Valid"},
            })
        if operation == "provinces":
            return httpx.Response(200, json=[
                {"stateProvinceCode": 7, "stateProvinceDesc": "PUNJAB"},
                {"stateProvinceCode": 8, "stateProvinceDesc": "SINDH"},
            ])
        return httpx.Response(404, json={"error": "not found"})


@pytest.fixture(scope='function')
def fbr_gateway(monkeypatch):
    """Route every FbrClient.for_tenant() through the fake gateway."""
    gateway = FakeFbrGateway()

    def _for_tenant(cls, credentials, *, transport=None):
        return cls(credentials, FbrEndpoints.from_config(current_app.config), transport=gateway.transport)

    monkeypatch.setattr(FbrClient, "for_tenant", classmethod(_for_tenant))
    return gateway



@pytest.fixture(scope='function')
def edit_sale_during_sync(db_session, monkeypatch):
    """
    Factory: another writer bumps the sale's version just before the synced
    fields are flushed, `times` attempts in a row, so the optimistic lock
    check fails for those attempts.
    """
    def _install(module, times=1):
        original = module.mark_sale_synced
        remaining = {"bumps": times}

        def _mark_sale_synced(sale, *args, **kwargs):
            if remaining["bumps"] > 0:
                remaining["bumps"] -= 1
                loaded_version = sale.version_id
                db_session.execute(
                    Sale.__table__.update()
                    .where(Sale.__table__.c.id == sale.id)
                    .values(version_id=loaded_version + 1)
                )
            return original(sale, *args, **kwargs)

        monkeypatch.setattr(module, "mark_sale_synced", _mark_sale_synced)
        return remaining

    return _install
