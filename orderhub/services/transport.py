"""
Outbound HTTP transport for result callbacks.

send() never raises: every result, including timeouts and connection errors,
comes back as a DeliveryOutcome.
"""
import asyncio
import time
from typing import Optional

import httpx
from pydantic import BaseModel

from orderhub.config import settings
from orderhub.services.signing import SIGNATURE_HEADER, format_signature_header


class DeliveryOutcome(BaseModel):
    """Normalized result of one HTTP attempt."""
    success: bool
    status_code: Optional[int] = None
    response_body: Optional[str] = None
    error: Optional[str] = None
    response_time_ms: Optional[int] = None
    # False when resending the same request can never succeed (malformed URL)
    retryable: bool = True


class WebhookTransport:
    """Posts signed payloads to customer endpoints with a hard timeout."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
        version: str | None = None,
        body_limit: int | None = None,
    ):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.version = version or settings.WEBHOOK_VERSION
        self.body_limit = body_limit if body_limit is not None else settings.WEBHOOK_RESPONSE_BODY_LIMIT

    @property
    def user_agent(self) -> str:
        return f"OrderHub-Webhook/{self.version}"

    def build_headers(self, signature: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: format_signature_header(signature),
            "User-Agent": self.user_agent,
        }

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> httpx.Response:
        if self.client is not None:
            return await self.client.post(url, content=body, headers=headers, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, content=body, headers=headers)

    async def send(self, url: str, payload: bytes | str, signature: str) -> DeliveryOutcome:
        """
        POST payload to url.

        Args:
            url: Customer endpoint
            payload: Serialized payload, sent byte-for-byte
            signature: Hex HMAC of payload

        Returns:
            DeliveryOutcome; success iff the endpoint answered 2xx
        """
        body = payload.encode("utf-8") if isinstance(payload, str) else payload
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            # Overall deadline; httpx timeouts are per phase and reset on every chunk read
            response = await asyncio.wait_for(
                self._post(url, body, self.build_headers(signature)),
                timeout=self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return DeliveryOutcome(success=False, error="timeout", response_time_ms=elapsed_ms())
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            return DeliveryOutcome(
                success=False,
                error=str(e) or e.__class__.__name__,
                response_time_ms=elapsed_ms(),
                retryable=False,
            )
        except Exception as e:
            return DeliveryOutcome(
                success=False,
                error=str(e) or e.__class__.__name__,
                response_time_ms=elapsed_ms(),
            )

        response_body = response.text[: self.body_limit]
        if response.is_success:
            return DeliveryOutcome(
                success=True,
                status_code=response.status_code,
                response_body=response_body,
                response_time_ms=elapsed_ms(),
            )
        return DeliveryOutcome(
            success=False,
            status_code=response.status_code,
            response_body=response_body,
            error=f"HTTP {response.status_code}",
            response_time_ms=elapsed_ms(),
        )
