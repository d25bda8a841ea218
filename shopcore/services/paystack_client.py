import logging
import random
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests

from shopcore.errors import (
    GatewayAuthError,
    GatewayError,
    GatewayRejectedError,
    GatewayResponseError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    InvariantViolation,
)

logger = logging.getLogger(__name__)


class PaystackClient:
    """
    Thin HTTP transport to the gateway.

    Each call gets a per-attempt timeout and a small retry budget. Only
    timeouts, connection errors and 5xx are retried; a 4xx means the request
    itself is wrong and repeating it cannot help.
    """

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        timeout: float = 12.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        http: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.http = http or requests.Session()
        self._sleep = sleep

    def initialize_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/transaction/initialize", json=payload)

    def verify_transaction(self, reference: str) -> Dict[str, Any]:
        return self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")

    def _headers(self) -> Dict[str, str]:
        if not self.secret_key:
            raise InvariantViolation("Payment gateway secret key is not configured")
        return {
            "Authorization": f"Bearer {self.secret_key}",
            "Content-Type": "application/json",
        }

    def _backoff(self, attempt: int) -> float:
        return self.backoff_base * (2 ** (attempt - 1)) + random.random() * self.backoff_base

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = self._headers()
        attempts = 1 + max(self.max_retries, 0)
        last_error: Optional[GatewayError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.http.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self.timeout,
                    **kwargs,
                )
            except requests.Timeout:
                last_error = GatewayTimeoutError("Payment service timed out. Please try again shortly.")
            except requests.ConnectionError as e:
                last_error = GatewayUnavailableError(f"Payment service unreachable: {e}")
            else:
                status = response.status_code

                if status in (401, 403):
                    logger.error(f"Gateway rejected our credentials ({status}) on {method} {path}")
                    raise GatewayAuthError("Payment gateway authentication failed")

                if 400 <= status < 500:
                    message = _error_message(response)
                    logger.warning(f"Gateway rejected {method} {path} ({status}): {message}")
                    raise GatewayRejectedError(f"Payment request rejected: {message}", http_status=status)

                if status >= 500:
                    last_error = GatewayUnavailableError(
                        "Payment service temporarily unavailable", http_status=status
                    )
                else:
                    return _json_body(response)

            logger.warning(f"Gateway {method} {path} attempt {attempt}/{attempts} failed: {last_error.kind}")

            if attempt < attempts:
                self._sleep(self._backoff(attempt))

        logger.error(f"Gateway {method} {path} failed after {attempts} attempts: {last_error.kind}")
        raise last_error


def _json_body(response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        raise GatewayResponseError("Gateway response is not valid JSON", field="body")

    if not isinstance(body, dict):
        raise GatewayResponseError("Gateway response is not an object", field="body")
    return body


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or "no message"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return "no message"
