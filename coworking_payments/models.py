"""Plain data types passed between the checkout and reconciliation steps.

Nothing here is persisted by the service itself.  :class:`LedgerRow` mirrors
one row of the external spreadsheet and :class:`PaymentRecord` wraps the raw
payment object returned by the gateway::

    record = PaymentRecord(gateway.get_payment("123"))
    if record.is_approved:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

#: Ledger status written when a checkout is created.
STATUS_CREATED = "Created"
#: Ledger status written once the gateway reports the payment as approved.
STATUS_PAID = "Paid"

#: Gateway payment status that triggers the confirmation side effects.
APPROVED = "approved"


@dataclass
class Payer:
    """The person paying for a reservation."""

    name: str | None = None
    email: str | None = None
    tax_id: str | None = None
    tax_id_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None, default_tax_id_type: str = "CPF") -> "Payer":
        """Build a payer from a request ``payer`` object.

        Accepts both the flat form (``taxId`` / ``taxIdType``) and the
        gateway-shaped ``identification: {type, number}`` block.
        """
        data = data if isinstance(data, dict) else {}
        identification = data.get("identification")
        if not isinstance(identification, dict):
            identification = {}
        return cls(
            name=data.get("name"),
            email=data.get("email"),
            tax_id=data.get("taxId") or identification.get("number"),
            tax_id_type=(
                data.get("taxIdType") or identification.get("type") or default_tax_id_type
            ),
        )

    @property
    def first_name(self) -> str:
        return (self.name or "").split(" ")[0]

    @property
    def last_name(self) -> str:
        return " ".join((self.name or "").split(" ")[1:])


@dataclass
class ReservationRequest:
    """A reservation the front end wants to pay for."""

    kind: str | None
    day_count: int = 1
    month_count: int | None = None
    hour_count: int | None = None
    payer: Payer = field(default_factory=Payer)


@dataclass(frozen=True)
class PricingResult:
    amount: Decimal
    description: str


@dataclass(frozen=True)
class CheckoutSession:
    """A checkout preference created on the gateway."""

    id: str
    init_point: str
    external_reference: str


@dataclass
class LedgerRow:
    """One spreadsheet row, in column order."""

    created_at: str
    payer_name: str
    payer_email: str
    tax_id: str
    kind: str
    description: str
    amount: str
    external_reference: str
    status: str = STATUS_CREATED

    #: Column headers, in the order values are written.
    HEADERS = (
        "createdAt",
        "payerName",
        "payerEmail",
        "taxId",
        "kind",
        "description",
        "amount",
        "externalReference",
        "status",
    )

    def to_values(self) -> list[str]:
        return [
            self.created_at,
            self.payer_name,
            self.payer_email,
            self.tax_id,
            self.kind,
            self.description,
            self.amount,
            self.external_reference,
            self.status,
        ]

    @classmethod
    def from_values(cls, values: list[str]) -> "LedgerRow":
        """Build a row from worksheet cell values, padding short rows."""
        padded = list(values) + [""] * (len(cls.HEADERS) - len(values))
        return cls(*padded[: len(cls.HEADERS)])


class PaymentRecord:
    """Read-only view over a raw gateway payment object."""

    def __init__(self, raw: dict[str, Any]) -> None:
        self.raw = raw if isinstance(raw, dict) else {}

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.id} status={self.status!r}>"

    @property
    def id(self) -> str | None:
        value = self.raw.get("id")
        return str(value) if value is not None else None

    @property
    def status(self) -> str | None:
        return self.raw.get("status")

    @property
    def is_approved(self) -> bool:
        return self.status == APPROVED

    @property
    def payer(self) -> dict[str, Any]:
        payer = self.raw.get("payer")
        return payer if isinstance(payer, dict) else {}

    @property
    def payer_email(self) -> str | None:
        return self.payer.get("email") or None

    @property
    def payer_first_name(self) -> str | None:
        return self.payer.get("first_name") or None

    @property
    def description(self) -> str | None:
        return self.raw.get("description")

    @property
    def amount(self) -> Decimal | None:
        value = self.raw.get("transaction_amount")
        if value is None:
            return None
        return Decimal(str(value))

    @property
    def external_reference(self) -> str | None:
        return self.raw.get("external_reference") or None


@dataclass(frozen=True)
class Outcome:
    """Result of a best-effort side effect (email, ledger write)."""

    ok: bool
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "detail": self.detail}
