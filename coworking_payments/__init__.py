"""coworking_payments – Flask extension for coworking reservation payments."""

from __future__ import annotations

import logging
from typing import Any

from coworking_payments.checkout import CheckoutInitiator, CheckoutSettings, ReferenceGenerator
from coworking_payments.gateway import API_URL, MercadoPagoGateway
from coworking_payments.ledger import SheetsLedger
from coworking_payments.mailer import ResendMailer
from coworking_payments.notifier import CONTACT_FROM_PAYER, ConfirmationNotifier
from coworking_payments.status import PaymentStatusResolver
from coworking_payments.version import __version__
from coworking_payments.views import create_blueprint

__all__ = ["CoworkingPayments", "__version__"]

logger = logging.getLogger(__name__)

#: Configuration defaults installed by :meth:`CoworkingPayments.init_app`.
DEFAULTS: dict[str, Any] = {
    "COWORKING_ENVIRONMENT": "development",
    "COWORKING_URL_PREFIX": "/api",
    "COWORKING_MERCADOPAGO_ACCESS_TOKEN": None,
    "COWORKING_MERCADOPAGO_API_URL": API_URL,
    "COWORKING_RESEND_API_KEY": None,
    "COWORKING_FROM_EMAIL": None,
    "COWORKING_SPREADSHEET_ID": None,
    "COWORKING_SERVICE_ACCOUNT": None,
    "COWORKING_WORKSHEET": None,
    "COWORKING_FRONTEND_URL": "http://localhost:3000",
    "COWORKING_NOTIFICATION_URL": None,
    "COWORKING_CONTACT_SOURCE": CONTACT_FROM_PAYER,
    "COWORKING_CONTACT_URL": None,
    "COWORKING_DAILY_RATE": "1",
    "COWORKING_MONTHLY_RATE": "1",
    "COWORKING_HOURLY_RATE": "1",
    "COWORKING_CURRENCY": "BRL",
    "COWORKING_STATEMENT_DESCRIPTOR": "COWORKING",
    "COWORKING_DEFAULT_TAX_ID_TYPE": "CPF",
    "COWORKING_EMAIL_SUBJECT": "✅ Reserva Confirmada - Coworking",
    "COWORKING_TEST_CARD": None,
    "COWORKING_HTTP_TIMEOUT": None,
    "COWORKING_LOG_LEVEL": "INFO",
}


class CoworkingPayments:
    """Flask extension wiring checkout, status polling and webhooks into an app.

    Usage – application factory pattern::

        from flask import Flask
        from coworking_payments import CoworkingPayments

        payments = CoworkingPayments()

        def create_app():
            app = Flask(__name__)
            app.config["COWORKING_MERCADOPAGO_ACCESS_TOKEN"] = "APP_USR-..."
            payments.init_app(app)
            return app

    Usage – injected collaborators (tests, custom clients)::

        ext = CoworkingPayments(app, gateway=FakeGateway(), mailer=FakeMailer())

    Any collaborator not passed in is built from ``app.config`` when its
    credentials are configured, and left as ``None`` otherwise:

    ``COWORKING_MERCADOPAGO_ACCESS_TOKEN``
        Enables the Mercado Pago gateway.
    ``COWORKING_RESEND_API_KEY`` / ``COWORKING_FROM_EMAIL``
        Enable confirmation emails.
    ``COWORKING_SPREADSHEET_ID`` / ``COWORKING_SERVICE_ACCOUNT``
        Enable the spreadsheet ledger (service-account info as a dict).
    ``COWORKING_CONTACT_SOURCE``
        ``"payer"`` (default) emails the gateway payer; ``"ledger"`` looks
        the contact up in the ledger row for the payment's reference.
    ``COWORKING_URL_PREFIX``
        URL prefix for the blueprint (default: ``"/api"``).
    """

    def __init__(self, app=None, *, gateway=None, mailer=None, ledger=None) -> None:
        self.gateway = gateway
        self.mailer = mailer
        self.ledger = ledger
        self.checkout: CheckoutInitiator | None = None
        self.notifier: ConfirmationNotifier | None = None
        self.resolver: PaymentStatusResolver | None = None
        self.references = ReferenceGenerator()

        if app is not None:
            self.init_app(app)

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def init_app(self, app) -> None:
        """Initialise the extension against *app*."""
        for key, value in DEFAULTS.items():
            app.config.setdefault(key, value)
        config = app.config

        if self.gateway is None:
            self.gateway = self._build_gateway(config)
        if self.mailer is None:
            self.mailer = self._build_mailer(config)
        if self.ledger is None:
            self.ledger = self._build_ledger(config)

        self.checkout = CheckoutInitiator(
            self.gateway,
            CheckoutSettings.from_config(config),
            ledger=self.ledger,
            references=self.references,
            test_card=config["COWORKING_TEST_CARD"],
        )
        self.notifier = ConfirmationNotifier(
            self.mailer,
            ledger=self.ledger,
            contact_source=config["COWORKING_CONTACT_SOURCE"],
            subject=config["COWORKING_EMAIL_SUBJECT"],
            contact_url=config["COWORKING_CONTACT_URL"],
        )
        self.resolver = PaymentStatusResolver(self.gateway, self.notifier, ledger=self.ledger)

        blueprint = create_blueprint(self)
        app.register_blueprint(blueprint, url_prefix=config["COWORKING_URL_PREFIX"])

        app.extensions["coworking"] = self
        logger.info(
            "coworking payments ready gateway=%s email=%s ledger=%s",
            self.gateway is not None,
            self.mailer is not None,
            self.ledger is not None,
        )

    @staticmethod
    def _build_gateway(config) -> MercadoPagoGateway | None:
        token = config["COWORKING_MERCADOPAGO_ACCESS_TOKEN"]
        if not token:
            logger.warning("COWORKING_MERCADOPAGO_ACCESS_TOKEN is not set; payments disabled")
            return None
        return MercadoPagoGateway(
            token,
            base_url=config["COWORKING_MERCADOPAGO_API_URL"],
            timeout=config["COWORKING_HTTP_TIMEOUT"],
        )

    @staticmethod
    def _build_mailer(config) -> ResendMailer | None:
        api_key = config["COWORKING_RESEND_API_KEY"]
        from_email = config["COWORKING_FROM_EMAIL"]
        if not api_key or not from_email:
            return None
        return ResendMailer(api_key, from_email, timeout=config["COWORKING_HTTP_TIMEOUT"])

    @staticmethod
    def _build_ledger(config) -> SheetsLedger | None:
        spreadsheet_id = config["COWORKING_SPREADSHEET_ID"]
        credentials = config["COWORKING_SERVICE_ACCOUNT"]
        if not spreadsheet_id or not credentials:
            return None
        return SheetsLedger.from_service_account(
            spreadsheet_id, credentials, config["COWORKING_WORKSHEET"]
        )
