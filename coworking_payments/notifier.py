"""Confirmation email for approved payments.

Every failure here is soft: :meth:`ConfirmationNotifier.notify` returns an
:class:`~coworking_payments.models.Outcome` and logs, it never raises.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import render_template

from coworking_payments.exceptions import EmailError, LedgerError
from coworking_payments.models import Outcome, PaymentRecord

logger = logging.getLogger(__name__)

#: Contact taken from the gateway payment's ``payer`` block.
CONTACT_FROM_PAYER = "payer"
#: Contact taken from the ledger row matching the payment's external reference.
CONTACT_FROM_LEDGER = "ledger"

CONTACT_SOURCES = frozenset((CONTACT_FROM_PAYER, CONTACT_FROM_LEDGER))

TEMPLATE = "coworking/confirmation.html"


def format_amount(amount: Decimal | None) -> str:
    if amount is None:
        return "R$ -"
    return f"R$ {amount:.2f}"


class ConfirmationNotifier:
    """Resolve the payer's contact and email them a reservation confirmation.

    Args:
        mailer: Object with ``send(to, subject, html)``; ``None`` disables email.
        ledger: Ledger used when *contact_source* is ``"ledger"``.
        contact_source: ``"payer"`` or ``"ledger"``.
        subject: Email subject line.
        contact_url: Optional link (e.g. a chat channel) shown in the message.
    """

    def __init__(
        self,
        mailer,
        *,
        ledger=None,
        contact_source: str = CONTACT_FROM_PAYER,
        subject: str = "Reserva Confirmada - Coworking",
        contact_url: str | None = None,
    ) -> None:
        if contact_source not in CONTACT_SOURCES:
            raise ValueError(
                f"Unknown contact source {contact_source!r}. "
                f"Allowed values: {', '.join(sorted(CONTACT_SOURCES))}."
            )
        self.mailer = mailer
        self.ledger = ledger
        self.contact_source = contact_source
        self.subject = subject
        self.contact_url = contact_url

    def resolve_contact(self, payment: PaymentRecord) -> tuple[str | None, str | None]:
        """Return ``(email, name)`` for *payment*, either may be ``None``.

        Raises:
            LedgerError: When the ledger lookup itself fails.
        """
        if self.contact_source == CONTACT_FROM_PAYER:
            return payment.payer_email, payment.payer_first_name

        if self.ledger is None or not payment.external_reference:
            return None, None
        row = self.ledger.find(payment.external_reference)
        if row is None:
            return None, None
        return row.payer_email or None, row.payer_name or None

    def notify(self, payment: PaymentRecord) -> Outcome:
        """Send the confirmation for *payment*."""
        if self.contact_source == CONTACT_FROM_LEDGER and not payment.external_reference:
            logger.warning("payment %s has no external reference; cannot look up contact", payment.id)
            return Outcome(False, "payment has no external reference")

        try:
            email, name = self.resolve_contact(payment)
        except LedgerError as exc:
            logger.error("contact lookup failed for payment %s: %s", payment.id, exc)
            return Outcome(False, str(exc))

        if not email:
            logger.warning("no payer email found for payment %s", payment.id)
            return Outcome(False, "payer email not found")

        return self.notify_contact(email, name, payment)

    def notify_contact(self, email: str, name: str | None, payment: PaymentRecord) -> Outcome:
        """Render and send the confirmation to an explicit address."""
        if self.mailer is None:
            logger.warning("email is not configured; confirmation for %s not sent", payment.id)
            return Outcome(False, "email not configured")

        html = render_template(
            TEMPLATE,
            name=name or "Cliente",
            email=email,
            description=payment.description or "",
            amount=format_amount(payment.amount),
            reference=payment.external_reference or "",
            contact_url=self.contact_url,
        )
        try:
            message_id = self.mailer.send(email, self.subject, html)
        except EmailError as exc:
            logger.error("confirmation email to %s failed: %s", email, exc)
            return Outcome(False, str(exc))

        logger.info("confirmation email sent to %s for payment %s", email, payment.id)
        return Outcome(True, message_id or "sent")
