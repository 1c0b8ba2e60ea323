"""Shared pytest fixtures and fake collaborators for coworking-payments tests."""

import pytest
from flask import Flask

from coworking_payments import CoworkingPayments
from coworking_payments.exceptions import EmailError, GatewayError, LedgerError
from coworking_payments.models import LedgerRow

#: Mercado Pago sandbox Mastercard; only ever used as test data.
SANDBOX_CARD = {
    "card_number": "5031433215406351",
    "cardholder_name": "APRO",
    "expiration_month": "11",
    "expiration_year": "2030",
    "security_code": "123",
    "identification_type": "CPF",
    "identification_number": "12345678909",
    "payment_method_id": "master",
    "payer_email": "test@test.com",
}


class FakeGateway:
    """In-memory stand-in for :class:`~coworking_payments.gateway.MercadoPagoGateway`."""

    def __init__(self, payments=None, error=None):
        self.payments = dict(payments or {})
        self.error = error
        self.preferences = []
        self.created_payments = []
        self.card_tokens = []
        self.lookups = []

    def _maybe_fail(self):
        if self.error is not None:
            raise GatewayError(self.error, status_code=400, details={"message": self.error})

    def create_preference(self, preference):
        self._maybe_fail()
        self.preferences.append(preference)
        pref_id = f"pref_{len(self.preferences)}"
        return {
            "id": pref_id,
            "init_point": f"https://www.mercadopago.com.br/checkout/v1/redirect?pref_id={pref_id}",
        }

    def create_payment(self, payment, *, idempotency_key=None):
        self._maybe_fail()
        self.created_payments.append(payment)
        return {"id": 1000 + len(self.created_payments), "status": "approved", **payment}

    def get_payment(self, payment_id):
        self.lookups.append(payment_id)
        self._maybe_fail()
        return self.payments[str(payment_id)]

    def create_card_token(self, card):
        self._maybe_fail()
        self.card_tokens.append(card)
        return {"id": "tok_test"}


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, subject, html):
        if self.fail:
            raise EmailError("provider unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html})
        return f"msg_{len(self.sent)}"


class FakeLedger:
    """List-backed ledger with the same lookup semantics as the spreadsheet."""

    def __init__(self, rows=None, fail=False):
        self.rows = list(rows or [])
        self.fail = fail
        self.updates = []
        self.headers_written = False

    def _maybe_fail(self):
        if self.fail:
            raise LedgerError("quota exceeded")

    def ensure_headers(self):
        self._maybe_fail()
        self.headers_written = True
        return True

    def append(self, row):
        self._maybe_fail()
        self.rows.append(row)

    def find(self, reference):
        self._maybe_fail()
        for row in self.rows:
            if row.external_reference == reference:
                return row
        return None

    def update_status(self, reference, status):
        self.updates.append((reference, status))
        self._maybe_fail()
        row = self.find(reference)
        if row is None:
            return False
        row.status = status
        return True


def build_row(reference, *, name="Ana Silva", email="ana@x.com", status="Created"):
    return LedgerRow(
        created_at="2024-06-10T12:00:00+00:00",
        payer_name=name,
        payer_email=email,
        tax_id="12345678909",
        kind="daily",
        description="Reserva de coworking - Diária (1 dia)",
        amount="1.00",
        external_reference=reference,
        status=status,
    )


def build_approved_payment(payment_id="123", reference="COWORKING-999", email="ana@x.com"):
    return {
        "id": int(payment_id),
        "status": "approved",
        "description": "Reserva de coworking - Diária (3 dias)",
        "transaction_amount": 3,
        "external_reference": reference,
        "payer": {"email": email, "first_name": "Ana"},
    }


@pytest.fixture
def fake_gateway():
    return FakeGateway


@pytest.fixture
def fake_mailer():
    return FakeMailer


@pytest.fixture
def fake_ledger():
    return FakeLedger


@pytest.fixture
def sandbox_card():
    return dict(SANDBOX_CARD)


@pytest.fixture
def make_row():
    """Builder for ledger rows: ``make_row(reference, name=..., email=..., status=...)``."""
    return build_row


@pytest.fixture
def approved_payment():
    """Builder for raw approved gateway payments."""
    return build_approved_payment


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def app(gateway, mailer, ledger):
    """Flask app wired with fake gateway, mailer and ledger."""
    application = Flask(__name__)
    application.config["TESTING"] = True
    application.config["COWORKING_FROM_EMAIL"] = "reservas@coworking.example"
    application.config["COWORKING_FRONTEND_URL"] = "https://coworking.example"

    CoworkingPayments(application, gateway=gateway, mailer=mailer, ledger=ledger)

    yield application


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def ext(app):
    """The CoworkingPayments extension instance."""
    return app.extensions["coworking"]
