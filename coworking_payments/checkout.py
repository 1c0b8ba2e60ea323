"""Checkout creation: preference (hosted checkout) and direct payments."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from coworking_payments.exceptions import LedgerError, ValidationError
from coworking_payments.log import reference_ctx
from coworking_payments.models import (
    STATUS_CREATED,
    CheckoutSession,
    LedgerRow,
    Outcome,
    Payer,
    PricingResult,
)
from coworking_payments.pricing import (
    Rates,
    calculate_price,
    ensure_valid,
    parse_reservation,
    to_count,
    to_decimal,
)

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "COWORKING-"


class ReferenceGenerator:
    """Issue ``COWORKING-<unix ms>`` references, strictly increasing per process.

    Two checkouts created in the same millisecond get consecutive
    timestamps instead of the same reference.
    """

    def __init__(self, prefix: str = REFERENCE_PREFIX, clock=time.time) -> None:
        self.prefix = prefix
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            now = int(self._clock() * 1000)
            self._last = max(now, self._last + 1)
            return f"{self.prefix}{self._last}"


@dataclass(frozen=True)
class CheckoutSettings:
    """Fixed values placed on every preference."""

    frontend_url: str = "http://localhost:3000"
    currency: str = "BRL"
    statement_descriptor: str = "COWORKING"
    default_tax_id_type: str = "CPF"
    notification_url: str | None = None
    rates: Rates = field(default_factory=Rates)

    @classmethod
    def from_config(cls, config) -> "CheckoutSettings":
        return cls(
            frontend_url=config["COWORKING_FRONTEND_URL"].rstrip("/"),
            currency=config["COWORKING_CURRENCY"],
            statement_descriptor=config["COWORKING_STATEMENT_DESCRIPTOR"],
            default_tax_id_type=config["COWORKING_DEFAULT_TAX_ID_TYPE"],
            notification_url=config["COWORKING_NOTIFICATION_URL"],
            rates=Rates.from_config(config),
        )

    @property
    def back_urls(self) -> dict[str, str]:
        return {
            "success": f"{self.frontend_url}/payment-success",
            "failure": f"{self.frontend_url}/pending",
            "pending": f"{self.frontend_url}/pending",
        }


def build_preference(
    pricing: PricingResult,
    payer: Payer,
    reference: str,
    settings: CheckoutSettings,
) -> dict[str, Any]:
    """Return the gateway request body for a hosted-checkout preference."""
    preference = {
        "items": [
            {
                "title": pricing.description,
                "unit_price": float(pricing.amount),
                "quantity": 1,
                "currency_id": settings.currency,
            }
        ],
        "payer": {
            "name": payer.name,
            "email": payer.email,
            "identification": {
                "type": payer.tax_id_type or settings.default_tax_id_type,
                "number": payer.tax_id,
            },
        },
        "back_urls": settings.back_urls,
        "auto_return": "approved",
        "payment_methods": {
            "excluded_payment_methods": [],
            "excluded_payment_types": [],
            "installments": 1,
        },
        "statement_descriptor": settings.statement_descriptor,
        "external_reference": reference,
        # Only approved or rejected, never "in review".
        "binary_mode": True,
    }
    if settings.notification_url:
        preference["notification_url"] = settings.notification_url
    return preference


@dataclass
class CheckoutResult:
    session: CheckoutSession
    pricing: PricingResult
    ledger: Outcome | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.session.id,
            "initPoint": self.session.init_point,
            "externalReference": self.session.external_reference,
            "amount": float(self.pricing.amount),
            "description": self.pricing.description,
        }
        if self.ledger is not None:
            data["ledger"] = self.ledger.to_dict()
        return data


def _positive_amount(value, message: str) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise ValidationError(message)
    try:
        amount = to_decimal(value)
    except ValidationError as exc:
        raise ValidationError(message) from exc
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(message)
    return amount


class CheckoutInitiator:
    """Price a reservation, create the gateway checkout, record it in the ledger.

    Args:
        gateway: Payment gateway client (``create_preference`` …).
        settings: :class:`CheckoutSettings`.
        ledger: Optional ledger; when set every checkout appends a row.
        references: Callable returning a fresh external reference.
        test_card: Card data used by :meth:`test_payment`; ``None`` disables it.
    """

    def __init__(
        self,
        gateway,
        settings: CheckoutSettings,
        *,
        ledger=None,
        references=None,
        test_card: dict[str, Any] | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.ledger = ledger
        self.references = references if references is not None else ReferenceGenerator()
        self.test_card = test_card

    # ------------------------------------------------------------------
    # Hosted checkout
    # ------------------------------------------------------------------

    def price(self, data: dict[str, Any]) -> tuple[PricingResult, str]:
        """Return the validated pricing and reservation kind for a request body."""
        if data.get("kind") is not None or data.get("tipo") is not None:
            reservation = parse_reservation(data, self.settings.default_tax_id_type)
            return ensure_valid(calculate_price(reservation, self.settings.rates)), reservation.kind

        amount = _positive_amount(data.get("amount"), "Valor da transação inválido")
        pricing = PricingResult(amount=amount, description=(data.get("description") or "").strip())
        return ensure_valid(pricing), ""

    def create(self, data: dict[str, Any]) -> CheckoutResult:
        """Create a hosted-checkout preference for the request body *data*.

        Raises:
            ValidationError: Before any gateway call when the body cannot be priced.
            GatewayError: When the gateway rejects the preference.
        """
        pricing, kind = self.price(data)
        payer = Payer.from_dict(data.get("payer"), self.settings.default_tax_id_type)

        reference = self.references()
        reference_token = reference_ctx.set(reference)
        try:
            preference = build_preference(pricing, payer, reference, self.settings)

            logger.info("creating preference reference=%s amount=%s", reference, pricing.amount)
            response = self.gateway.create_preference(preference)
            session = CheckoutSession(
                id=str(response.get("id", "")),
                init_point=response.get("init_point", ""),
                external_reference=reference,
            )
            logger.info("preference created id=%s", session.id)

            result = CheckoutResult(session=session, pricing=pricing)
            if self.ledger is not None:
                result.ledger = self.record(session, pricing, payer, kind)
            return result
        finally:
            reference_ctx.reset(reference_token)

    def record(
        self, session: CheckoutSession, pricing: PricingResult, payer: Payer, kind: str
    ) -> Outcome:
        """Append the pending reservation to the ledger; failures are soft."""
        row = LedgerRow(
            created_at=datetime.now(timezone.utc).isoformat(),
            payer_name=payer.name or "",
            payer_email=payer.email or "",
            tax_id=payer.tax_id or "",
            kind=kind or "",
            description=pricing.description,
            amount=f"{pricing.amount:.2f}",
            external_reference=session.external_reference,
            status=STATUS_CREATED,
        )
        try:
            self.ledger.append(row)
        except LedgerError as exc:
            logger.error("ledger write failed reference=%s: %s", session.external_reference, exc)
            return Outcome(False, str(exc))
        return Outcome(True, "row appended")

    # ------------------------------------------------------------------
    # Direct payments
    # ------------------------------------------------------------------

    def process_payment(self, data: dict[str, Any]) -> dict[str, Any]:
        """Create a payment directly from a payment-brick submission.

        Credit-card payments need a card token produced client-side
        (``token`` or ``formData.token``); other methods need
        ``selectedPaymentMethod``.
        """
        amount = _positive_amount(data.get("amount"), "Valor da transação inválido")

        raw_payer = data.get("payer")
        if (
            not isinstance(raw_payer, dict)
            or not raw_payer.get("email")
            or not raw_payer.get("identification")
            or not raw_payer.get("name")
        ):
            raise ValidationError("Dados do pagador inválidos")
        payer = Payer.from_dict(raw_payer, self.settings.default_tax_id_type)

        form = data.get("formData") if isinstance(data.get("formData"), dict) else {}
        method = form.get("payment_method_id") or data.get("selectedPaymentMethod")
        if not method:
            raise ValidationError("Método de pagamento inválido")

        payment = {
            "transaction_amount": float(amount),
            "description": data.get("description") or "Pagamento Coworking",
            "payment_method_id": method,
            "installments": to_count(form.get("installments"), "installments") or 1,
            "payer": {
                "email": payer.email,
                "identification": {"type": payer.tax_id_type, "number": payer.tax_id},
                "first_name": payer.first_name,
                "last_name": payer.last_name,
            },
        }

        if data.get("paymentType") == "credit_card":
            token = data.get("token") or form.get("token")
            if not token:
                raise ValidationError("Token do cartão ausente")
            payment["token"] = token
            if form.get("issuer_id"):
                payment["issuer_id"] = form["issuer_id"]

        logger.info("creating %s payment amount=%s", method, amount)
        return self.gateway.create_payment(payment)

    def test_payment(self, data: dict[str, Any]) -> dict[str, Any]:
        """Charge the configured test card.

        The test card is a dict with ``card_number``, ``expiration_month``,
        ``expiration_year``, ``security_code``, ``cardholder_name``,
        ``identification_type``, ``identification_number``,
        ``payment_method_id`` and ``payer_email``.
        """
        if self.test_card is None:
            raise RuntimeError("test payments are not enabled")
        amount = _positive_amount(data.get("amount"), "Valor inválido")

        card = self.test_card
        identification = {
            "type": card.get("identification_type") or self.settings.default_tax_id_type,
            "number": card.get("identification_number"),
        }
        token = self.gateway.create_card_token(
            {
                "card_number": card["card_number"],
                "expiration_month": card["expiration_month"],
                "expiration_year": card["expiration_year"],
                "security_code": card["security_code"],
                "cardholder": {"name": card.get("cardholder_name"), "identification": identification},
            }
        )
        return self.gateway.create_payment(
            {
                "transaction_amount": float(amount),
                "token": token["id"],
                "description": data.get("description") or "Teste de pagamento",
                "installments": 1,
                "payment_method_id": card["payment_method_id"],
                "payer": {"email": card["payer_email"], "identification": identification},
            }
        )
