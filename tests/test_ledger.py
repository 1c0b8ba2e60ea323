"""Tests for the spreadsheet ledger."""

import pytest
from flask import Flask
from google.auth.exceptions import RefreshError, TransportError
from gspread.exceptions import GSpreadException

from coworking_payments import CoworkingPayments
from coworking_payments.exceptions import LedgerError
from coworking_payments.ledger import SheetsLedger, service_account_info
from coworking_payments.models import LedgerRow


class FakeWorksheet:
    """Minimal stand-in for :class:`gspread.Worksheet`."""

    def __init__(self, values=None, fail=False, error=None):
        self.values = [list(v) for v in (values or [])]
        self.fail = fail
        self.error = error
        self.reads = 0
        self.input_options = []

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise GSpreadException("503: backend error")

    def get_all_values(self):
        self._maybe_fail()
        self.reads += 1
        return [list(v) for v in self.values]

    def append_row(self, values, value_input_option=None):
        self._maybe_fail()
        self.input_options.append(value_input_option)
        self.values.append(list(values))

    def update_cell(self, row, col, value):
        self._maybe_fail()
        self.values[row - 1][col - 1] = value


@pytest.fixture
def worksheet(make_row):
    return FakeWorksheet(
        [
            list(LedgerRow.HEADERS),
            make_row("COWORKING-1", name="Ana", email="ana@x.com").to_values(),
            make_row("COWORKING-2", name="Bruno", email="bruno@x.com").to_values(),
            make_row("COWORKING-2", name="Carla", email="carla@x.com").to_values(),
        ]
    )


def test_append_writes_row_values(worksheet, make_row):
    ledger = SheetsLedger(worksheet)
    ledger.append(make_row("COWORKING-3"))
    assert worksheet.values[-1][7] == "COWORKING-3"
    assert worksheet.values[-1][8] == "Created"


def test_find_returns_row(worksheet):
    row = SheetsLedger(worksheet).find("COWORKING-1")
    assert row.payer_name == "Ana"
    assert row.payer_email == "ana@x.com"


def test_find_first_match_wins(worksheet):
    """Two rows share a reference: the earlier one is returned."""
    row = SheetsLedger(worksheet).find("COWORKING-2")
    assert row.payer_name == "Bruno"


def test_find_missing_reference(worksheet):
    assert SheetsLedger(worksheet).find("COWORKING-404") is None


def test_find_scans_fresh_each_time(worksheet):
    ledger = SheetsLedger(worksheet)
    ledger.find("COWORKING-1")
    ledger.find("COWORKING-1")
    assert worksheet.reads == 2


def test_find_ignores_header_row(worksheet):
    assert SheetsLedger(worksheet).find("externalReference") is None


def test_update_status_first_match(worksheet):
    ledger = SheetsLedger(worksheet)
    assert ledger.update_status("COWORKING-2", "Paid") is True
    assert worksheet.values[2][8] == "Paid"
    assert worksheet.values[3][8] == "Created"


def test_update_status_no_match(worksheet):
    ledger = SheetsLedger(worksheet)
    assert ledger.update_status("COWORKING-404", "Paid") is False


def test_short_rows_are_padded():
    worksheet = FakeWorksheet([["2024-06-10", "Ana", "ana@x.com", "", "daily", "Reserva", "1.00", "COWORKING-7"]])
    row = SheetsLedger(worksheet).find("COWORKING-7")
    assert row.status == ""


def test_worksheet_errors_become_ledger_errors(make_row):
    ledger = SheetsLedger(FakeWorksheet(fail=True))
    with pytest.raises(LedgerError):
        ledger.find("COWORKING-1")
    with pytest.raises(LedgerError):
        ledger.append(make_row("COWORKING-1"))


def test_ensure_headers_on_empty_sheet():
    worksheet = FakeWorksheet()
    ledger = SheetsLedger(worksheet)
    assert ledger.ensure_headers() is True
    assert worksheet.values == [list(LedgerRow.HEADERS)]
    assert ledger.ensure_headers() is False


def test_worksheet_opened_lazily():
    opened = []

    def opener():
        opened.append(True)
        return FakeWorksheet()

    ledger = SheetsLedger(opener)
    assert opened == []
    ledger.find("COWORKING-1")
    ledger.find("COWORKING-1")
    assert opened == [True]


def test_worksheet_open_failure():
    def opener():
        raise GSpreadException("spreadsheet not found")

    with pytest.raises(LedgerError):
        SheetsLedger(opener).find("COWORKING-1")


def test_service_account_info_restores_newlines():
    info = service_account_info("ledger@x.iam.gserviceaccount.com", "-----BEGIN-----\\nabc\\n-----END-----")
    assert info["private_key"] == "-----BEGIN-----\nabc\n-----END-----"
    assert info["type"] == "service_account"
    assert info["token_uri"] == "https://oauth2.googleapis.com/token"


def test_append_stores_values_raw(worksheet, make_row):
    """Cells are written verbatim so tax ids keep leading zeros and text is never a formula."""
    row = make_row("COWORKING-3")
    row.tax_id = "01234567890"
    row.description = "=HYPERLINK(\"http://x\")"
    SheetsLedger(worksheet).append(row)
    assert worksheet.input_options == ["RAW"]
    assert worksheet.values[-1][3] == "01234567890"
    assert worksheet.values[-1][5] == "=HYPERLINK(\"http://x\")"


@pytest.mark.parametrize(
    "error",
    [
        RefreshError("invalid_grant: Invalid JWT Signature."),
        TransportError("connection reset"),
        ValueError("Could not deserialize key data."),
    ],
)
def test_auth_errors_become_ledger_errors(error, make_row):
    ledger = SheetsLedger(FakeWorksheet(error=error))
    with pytest.raises(LedgerError):
        ledger.find("COWORKING-1")
    with pytest.raises(LedgerError):
        ledger.append(make_row("COWORKING-1"))
    with pytest.raises(LedgerError):
        ledger.update_status("COWORKING-1", "Paid")


def test_malformed_key_on_open_becomes_ledger_error():
    def opener():
        raise ValueError("Could not deserialize key data.")

    with pytest.raises(LedgerError):
        SheetsLedger(opener).find("COWORKING-1")


# ---------------------------------------------------------------------------
# Ledger failures through the routes
# ---------------------------------------------------------------------------


@pytest.fixture
def revoked_app(gateway, mailer, approved_payment):
    """App whose ledger worksheet rejects every call with an expired grant."""
    gateway.payments["123"] = approved_payment()
    app = Flask(__name__)
    app.config["TESTING"] = True
    app.config["COWORKING_FROM_EMAIL"] = "reservas@coworking.example"
    ledger = SheetsLedger(FakeWorksheet(error=RefreshError("invalid_grant: Invalid JWT Signature.")))
    CoworkingPayments(app, gateway=gateway, mailer=mailer, ledger=ledger)
    return app


def test_webhook_acknowledged_when_ledger_auth_fails(revoked_app, mailer):
    resp = revoked_app.test_client().post("/api/webhook", json={"type": "payment", "data": {"id": "123"}})
    assert resp.status_code == 200
    assert resp.data == b"OK"
    assert len(mailer.sent) == 1


def test_poll_succeeds_when_ledger_auth_fails(revoked_app, mailer):
    resp = revoked_app.test_client().get("/api/payment/123")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "approved"
    assert len(mailer.sent) == 1


def test_checkout_succeeds_when_ledger_key_is_malformed(gateway):
    def opener():
        raise ValueError("Could not deserialize key data.")

    app = Flask(__name__)
    app.config["TESTING"] = True
    CoworkingPayments(app, gateway=gateway, ledger=SheetsLedger(opener))

    resp = app.test_client().post(
        "/api/create-preference", json={"kind": "daily", "payer": {"email": "ana@x.com"}}
    )
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["initPoint"]
    assert data["ledger"]["ok"] is False
    assert len(gateway.preferences) == 1
