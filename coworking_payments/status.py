"""Payment status resolution for polling and webhook notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from coworking_payments.exceptions import LedgerError
from coworking_payments.log import payment_id_ctx, reference_ctx
from coworking_payments.models import STATUS_PAID, Outcome, PaymentRecord

logger = logging.getLogger(__name__)

PAYMENT_NOTIFICATION = "payment"


@dataclass
class Resolution:
    """A fetched payment and what happened to its side effects.

    ``notification`` and ``ledger`` are ``None`` when the step was not
    attempted (payment not approved, or no ledger configured).
    """

    payment: PaymentRecord
    notification: Outcome | None = None
    ledger: Outcome | None = None


def notification_target(
    payload: Mapping[str, Any] | None, args: Mapping[str, Any] | None = None
) -> tuple[str | None, str | None]:
    """Return ``(type, resource id)`` from a webhook body or query string.

    Mercado Pago posts ``{"type": "payment", "data": {"id": "123"}}``; some
    notifications only carry ``?type=payment&data.id=123`` or the legacy
    ``?topic=payment&id=123``.
    """
    payload = payload if isinstance(payload, Mapping) else {}
    args = args or {}

    kind = payload.get("type") or args.get("type") or args.get("topic")
    data = payload.get("data")
    resource_id = data.get("id") if isinstance(data, Mapping) else None
    if resource_id is None:
        resource_id = args.get("data.id") or args.get("id")
    return kind, str(resource_id) if resource_id is not None else None


class PaymentStatusResolver:
    """Fetch a payment and, once approved, confirm it by email and in the ledger."""

    def __init__(self, gateway, notifier, *, ledger=None) -> None:
        self.gateway = gateway
        self.notifier = notifier
        self.ledger = ledger

    def poll(self, payment_id: str) -> Resolution:
        """Fetch *payment_id* and run the approval side effects.

        Raises:
            GatewayError: When the payment cannot be fetched.
        """
        payment_token = payment_id_ctx.set(str(payment_id))
        reference_token = None
        try:
            payment = PaymentRecord(self.gateway.get_payment(payment_id))
            reference_token = reference_ctx.set(payment.external_reference or "")
            logger.info("payment %s status=%s", payment.id, payment.status)
            return self.reconcile(payment)
        finally:
            if reference_token is not None:
                reference_ctx.reset(reference_token)
            payment_id_ctx.reset(payment_token)

    def handle_notification(
        self, payload: Mapping[str, Any] | None, args: Mapping[str, Any] | None = None
    ) -> Resolution | None:
        """Process a webhook notification; non-payment types return ``None``."""
        kind, resource_id = notification_target(payload, args)
        if kind != PAYMENT_NOTIFICATION:
            logger.info("ignoring %r notification", kind)
            return None
        if not resource_id:
            logger.warning("payment notification without an id")
            return None
        return self.poll(resource_id)

    def reconcile(self, payment: PaymentRecord) -> Resolution:
        resolution = Resolution(payment=payment)
        if not payment.is_approved:
            return resolution

        logger.info("payment %s approved, sending confirmation", payment.id)
        resolution.notification = self.notifier.notify(payment)
        if self.ledger is not None:
            resolution.ledger = self.mark_paid(payment)
        return resolution

    def mark_paid(self, payment: PaymentRecord) -> Outcome:
        """Move the ledger row for *payment* to ``Paid``; failures are soft."""
        reference = payment.external_reference
        if not reference:
            logger.warning("payment %s has no external reference; ledger not updated", payment.id)
            return Outcome(False, "payment has no external reference")
        try:
            updated = self.ledger.update_status(reference, STATUS_PAID)
        except LedgerError as exc:
            logger.error("ledger update failed reference=%s: %s", reference, exc)
            return Outcome(False, str(exc))
        if not updated:
            return Outcome(False, f"no ledger row for {reference}")
        return Outcome(True, f"{reference} marked {STATUS_PAID}")
