"""Blueprint with health, checkout, payment status, webhook and test routes."""

from __future__ import annotations

import logging
import time
import traceback
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from coworking_payments.exceptions import GatewayError, LedgerError, ValidationError
from coworking_payments.models import STATUS_CREATED, LedgerRow, PaymentRecord

if TYPE_CHECKING:
    from coworking_payments import CoworkingPayments

logger = logging.getLogger(__name__)


def create_blueprint(ext: "CoworkingPayments") -> Blueprint:
    """Return a Blueprint pre-configured with the extension instance."""

    bp = Blueprint("coworking", __name__, template_folder="templates")

    def _body() -> dict:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    def _gateway_unavailable():
        return jsonify({"error": "Gateway de pagamento não configurado"}), 503

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    @bp.errorhandler(ValidationError)
    def validation_error(exc: ValidationError):
        return jsonify({"error": exc.message, "details": exc.details}), 400

    @bp.errorhandler(GatewayError)
    def gateway_error(exc: GatewayError):
        return jsonify({"error": exc.message, "details": exc.details or "Sem detalhes adicionais"}), 500

    @bp.errorhandler(Exception)
    def unhandled_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        logger.exception("unhandled error on %s %s", request.method, request.path)
        body = {"error": str(exc), "details": "Sem detalhes adicionais"}
        if current_app.config["COWORKING_ENVIRONMENT"] != "production":
            body["traceback"] = traceback.format_exc()
        return jsonify(body), 500

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @bp.route("/health")
    def health():
        """Report which collaborators are configured."""
        config = current_app.config
        return jsonify(
            {
                "status": "ok",
                "environment": config["COWORKING_ENVIRONMENT"],
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "gateway": {"token_defined": ext.gateway is not None},
                "email": {
                    "configured": ext.mailer is not None,
                    "from_email": config["COWORKING_FROM_EMAIL"] or "não configurado",
                },
                "ledger": {
                    "configured": ext.ledger is not None,
                    "contact_source": ext.notifier.contact_source,
                },
            }
        )

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    @bp.route("/create-preference", methods=["POST"])
    def create_preference():
        """Create a hosted-checkout preference.

        Accepts either a reservation (``kind``/``tipo`` with ``dias``,
        ``mes``, ``horario``) or an explicit ``amount`` and ``description``,
        plus a ``payer`` object.
        """
        if ext.gateway is None:
            return _gateway_unavailable()
        result = ext.checkout.create(_body())
        return jsonify(result.to_dict())

    @bp.route("/create-payment/process", methods=["POST"])
    def process_payment():
        """Create a payment directly from a payment-brick submission."""
        if ext.gateway is None:
            return _gateway_unavailable()
        return jsonify(ext.checkout.process_payment(_body()))

    @bp.route("/test-payment", methods=["POST"])
    def test_payment():
        """Charge the configured test card (disabled unless one is configured)."""
        if ext.checkout.test_card is None:
            return jsonify({"error": "Pagamentos de teste não habilitados"}), 404
        if ext.gateway is None:
            return _gateway_unavailable()
        return jsonify(ext.checkout.test_payment(_body()))

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    @bp.route("/payment/<payment_id>")
    def payment_status(payment_id: str):
        """Return the gateway payment, confirming it when approved."""
        if ext.gateway is None:
            return _gateway_unavailable()
        resolution = ext.resolver.poll(payment_id)
        return jsonify(resolution.payment.raw)

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    @bp.route("/webhook", methods=["POST"])
    def webhook():
        """Receive a gateway notification.

        Always answers ``200 OK`` once the notification is processed, even
        when the confirmation email or ledger update failed, so the gateway
        does not keep re-sending it.
        """
        payload = request.get_json(silent=True)
        logger.info("webhook received: %s", payload)
        if ext.gateway is not None:
            ext.resolver.handle_notification(payload, request.args)
        else:
            logger.warning("webhook ignored: payment gateway not configured")
        return "OK", 200, {"Content-Type": "text/plain; charset=utf-8"}

    # ------------------------------------------------------------------
    # Operational checks
    # ------------------------------------------------------------------

    @bp.route("/test-email", methods=["POST"])
    def test_email():
        """Send a sample confirmation to ``email``."""
        email = _body().get("email")
        if not email:
            return jsonify({"error": "Email é obrigatório"}), 400

        payment = PaymentRecord(
            {
                "payer": {"email": email, "first_name": "Teste"},
                "description": "Teste de envio de email",
                "transaction_amount": 10.00,
                "external_reference": f"TEST-{int(time.time() * 1000)}",
            }
        )
        outcome = ext.notifier.notify_contact(email, "Teste", payment)
        if outcome.ok:
            return jsonify({"success": True, "message": "Email de teste enviado com sucesso!"})
        return (
            jsonify(
                {
                    "success": False,
                    "message": "Falha ao enviar email de teste",
                    "detail": outcome.detail,
                }
            ),
            500,
        )

    @bp.route("/test-sheets", methods=["POST"])
    def test_sheets():
        """Append a sample row to the ledger."""
        if ext.ledger is None:
            return jsonify({"success": False, "message": "Planilha não configurada"}), 400

        row = LedgerRow(
            created_at=datetime.now(timezone.utc).isoformat(),
            payer_name="Teste",
            payer_email="teste@exemplo.com",
            tax_id="",
            kind="test",
            description="Teste de integração com a planilha",
            amount="0.00",
            external_reference=f"TEST-{int(time.time() * 1000)}",
            status=STATUS_CREATED,
        )
        try:
            ext.ledger.ensure_headers()
            ext.ledger.append(row)
        except LedgerError as exc:
            logger.error("ledger test failed: %s", exc)
            return jsonify({"success": False, "message": str(exc)}), 500
        return jsonify({"success": True, "message": "Linha de teste adicionada à planilha"})

    return bp
