"""
Transport for the account emails: verification links, MFA codes, reset links
and password-change notices.

The notification dispatcher renders each email and hands it here from a worker
thread. The gateway authenticates every request by an HMAC-SHA256 signature
over the exact JSON body, so the body is serialized once and signed as sent.
"""

import hashlib
import hmac
import json
import logging

import requests

logger = logging.getLogger(__name__)


class EmailGatewayError(Exception):
    """Delivery failed. The dispatcher logs it; the auth flow has already returned."""


class EmailGatewayClient:
    """Signed POSTs to the email gateway.

    Every account email goes out as the `auth` sender. The gateway also knows
    `system`, which the account flows do not use.
    """

    SENDERS = ("auth", "system")

    def __init__(self, gateway_url: str, api_key: str, hmac_secret: str, timeout: float = 10):
        """
        Args:
            gateway_url: Gateway send endpoint, from Vault `accounts/email`
            api_key: Sent as X-API-Key
            hmac_secret: Key for the X-Signature HMAC
            timeout: Per-request timeout in seconds; a slow gateway only
                delays a dispatcher worker, never a request

        Raises:
            ValueError: If any credential is empty
        """
        if not gateway_url:
            raise ValueError("gateway_url is required")
        if not api_key:
            raise ValueError("api_key is required")
        if not hmac_secret:
            raise ValueError("hmac_secret is required")

        self.gateway_url = gateway_url
        self.api_key = api_key
        self.hmac_secret = hmac_secret
        self.timeout = timeout

    def sign(self, payload_json: str) -> str:
        """Hex HMAC-SHA256 of the serialized payload."""
        return hmac.new(
            self.hmac_secret.encode("utf-8"),
            payload_json.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def _sign_and_send(self, payload: dict) -> None:
        """
        POST one signed payload. The gateway answers {"success": bool, "message": str}.

        Raises:
            EmailGatewayError: Connection error, non-JSON reply, or a refusal
        """
        payload_json = json.dumps(payload, separators=(",", ":"))

        headers = {
            "Content-Type": "application/json",
            "X-API-Key": self.api_key,
            "X-Signature": self.sign(payload_json),
        }

        try:
            response = requests.post(
                self.gateway_url,
                data=payload_json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Email gateway connection failed: {e}")
            raise EmailGatewayError(f"Connection failed: {e}")

        try:
            response_data = response.json()
        except ValueError:
            logger.error(f"Email gateway returned invalid JSON (status {response.status_code})")
            raise EmailGatewayError("Invalid response from gateway")

        if response.status_code != 200 or not response_data.get("success"):
            error_msg = response_data.get("message", "Unknown error")
            logger.error(f"Email gateway error: {error_msg}")
            raise EmailGatewayError(f"Gateway error: {error_msg}")

    def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        sender: str = "auth",
    ) -> None:
        """
        Send one rendered account email as plain text.

        Args:
            to: Account email address
            subject: Rendered subject line
            body: Rendered plain-text body; may contain a link or a code
            sender: "auth" or "system"

        Raises:
            ValueError: If sender is invalid
            EmailGatewayError: On gateway failure
        """
        if sender not in self.SENDERS:
            raise ValueError(f"sender must be 'auth' or 'system', got '{sender}'")

        payload = {
            "type": "custom",
            "email": to,
            "subject": subject,
            "body": body,
            "sender": sender,
        }
        self._sign_and_send(payload)
        # Body is not logged: it carries the token or code
        logger.info(f"Email sent to {to}: {subject}")
