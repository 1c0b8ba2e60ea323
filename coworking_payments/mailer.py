"""Resend transactional-email client."""

from __future__ import annotations

import logging

import requests

from coworking_payments.exceptions import EmailError

logger = logging.getLogger(__name__)

API_URL = "https://api.resend.com"


class ResendMailer:
    """Send HTML email through the Resend ``/emails`` endpoint."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        base_url: str = API_URL,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> str:
        """Send one message and return the provider's message id.

        Raises:
            EmailError: On a non-2xx response or a transport failure.
        """
        try:
            response = self.session.post(
                f"{self.base_url}/emails",
                json={"from": self.from_email, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise EmailError(f"email transport failed: {exc}") from exc

        if not response.ok:
            raise EmailError(f"email provider returned {response.status_code}: {response.text}")

        try:
            message_id = response.json().get("id", "")
        except ValueError:
            message_id = ""
        logger.info("email sent to=%s id=%s", to, message_id)
        return message_id
