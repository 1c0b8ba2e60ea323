"""Mercado Pago REST client.

Only the four calls the service needs are wrapped: preference (checkout
session) creation, payment creation, payment lookup, and card tokenisation.
Each call is a single request; there is no retry.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import requests

from coworking_payments.exceptions import GatewayError

logger = logging.getLogger(__name__)

API_URL = "https://api.mercadopago.com"


def _error_message(response: requests.Response, default: str) -> tuple[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return default, response.text or None
    if isinstance(body, dict):
        return body.get("message") or default, body
    return default, body


class MercadoPagoGateway:
    """Thin wrapper over the Mercado Pago REST API.

    Args:
        access_token: Bearer token for the merchant account.
        base_url: API root; override in tests or for a sandbox proxy.
        session: A :class:`requests.Session` (or compatible object).
        timeout: Passed through to ``requests``; ``None`` keeps the
            transport default.
    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = API_URL,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"<MercadoPagoGateway {self.base_url}>"

    def _request(
        self,
        method: str,
        path: str,
        *,
        error: str,
        json: dict | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        all_headers = {"Authorization": f"Bearer {self.access_token}"}
        if json is not None:
            all_headers["Content-Type"] = "application/json"
        all_headers.update(headers or {})

        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                headers=all_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("gateway request failed: %s %s: %s", method, path, exc)
            raise GatewayError(f"{error}: {exc}") from exc

        if not response.ok:
            message, details = _error_message(response, error)
            logger.error(
                "gateway returned %s for %s %s: %s", response.status_code, method, path, message
            )
            raise GatewayError(message, status_code=response.status_code, details=details)

        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(f"{error}: invalid gateway response", details=response.text) from exc

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_preference(self, preference: dict[str, Any]) -> dict[str, Any]:
        """Create a checkout preference; returns the gateway object (``id``, ``init_point``…)."""
        return self._request(
            "POST", "/checkout/preferences", json=preference, error="Erro ao criar preferência"
        )

    def create_payment(
        self, payment: dict[str, Any], *, idempotency_key: str | None = None
    ) -> dict[str, Any]:
        """Create a payment directly (transparent checkout)."""
        return self._request(
            "POST",
            "/v1/payments",
            json=payment,
            headers={"X-Idempotency-Key": idempotency_key or uuid.uuid4().hex},
            error="Erro ao criar pagamento",
        )

    def get_payment(self, payment_id: str) -> dict[str, Any]:
        """Fetch the current state of a payment."""
        return self._request("GET", f"/v1/payments/{payment_id}", error="Erro ao buscar pagamento")

    def create_card_token(self, card: dict[str, Any]) -> dict[str, Any]:
        """Tokenise card data; the result's ``id`` is used as a payment ``token``."""
        token = self._request(
            "POST", "/v1/card_tokens", json=card, error="Erro ao criar token do cartão"
        )
        if not token.get("id"):
            raise GatewayError("Erro ao criar token do cartão", details=token)
        return token
