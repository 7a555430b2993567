"""HTTP client for the payout (disbursement) gateway."""

import logging
from decimal import Decimal
from typing import Any, Dict

import httpx

from rentflow.config import Settings, get_settings
from rentflow.errors import ExternalGatewayError

logger = logging.getLogger(__name__)


class PayoutGateway:
    """Thin client over ``POST /v2/payouts``.

    Every call is sent with an ``Idempotency-key`` header equal to the
    reference id, so a retried request never creates a second payout.
    """

    def __init__(
        self,
        base_url: str,
        secret_key: str,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize gateway client.

        Args:
            base_url: Gateway API root, e.g. https://api.xendit.co
            secret_key: API secret used as the basic-auth username
            timeout: Seconds before a call is abandoned
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PayoutGateway":
        settings = settings or get_settings()
        return cls(
            base_url=settings.payout_api_base_url,
            secret_key=settings.payout_secret_key,
            timeout=settings.payout_timeout_seconds,
        )

    def create_payout(
        self,
        reference_id: str,
        channel_code: str,
        channel_properties: Dict[str, Any],
        amount: Decimal,
        currency: str,
        description: str,
        metadata: Dict[str, Any] | None = None,
    ) -> Dict[str, Any]:
        """Request one disbursement.

        Returns:
            Parsed gateway response body; a 2xx reply whose body is not a JSON
            object yields {"reference_id": reference_id}

        Raises:
            ExternalGatewayError: Non-2xx response, timeout or transport failure
        """
        body = {
            "reference_id": reference_id,
            "channel_code": channel_code,
            "channel_properties": channel_properties,
            "amount": float(amount),
            "description": description,
            "currency": currency,
            "metadata": metadata or {},
        }
        try:
            with httpx.Client(
                base_url=self.base_url,
                auth=(self.secret_key, ""),
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                resp = client.post(
                    "/v2/payouts",
                    json=body,
                    headers={"Idempotency-key": reference_id},
                )
        except httpx.TimeoutException as e:
            logger.error("Payout %s timed out after %ss", reference_id, self.timeout)
            raise ExternalGatewayError(upstream={"error": "timeout", "detail": str(e)}) from e
        except httpx.HTTPError as e:
            logger.error("Payout %s transport error: %s", reference_id, e)
            raise ExternalGatewayError(upstream={"error": "transport", "detail": str(e)}) from e

        if resp.is_success:
            try:
                data = resp.json()
            except ValueError:
                data = None
            if not isinstance(data, dict):
                # Accepted all the same; the batch is tracked by its reference id
                logger.warning(
                    "Payout %s accepted with unreadable body: %r", reference_id, resp.text[:200]
                )
                data = {"reference_id": reference_id}
            logger.info("Payout %s accepted by gateway (id=%s)", reference_id, data.get("id"))
            return data

        try:
            upstream = resp.json()
        except ValueError:
            upstream = resp.text
        logger.error("Payout %s rejected: HTTP %d %s", reference_id, resp.status_code, upstream)
        raise ExternalGatewayError(upstream=upstream)


__all__ = ["PayoutGateway"]
