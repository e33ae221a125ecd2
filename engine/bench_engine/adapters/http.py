"""
Generic JSON-over-HTTP system under test.

Sends each operation as a POST to an operation endpoint and treats the
health endpoint as the liveness check. Failures are raised as typed engine
errors so the executor can classify them without parsing messages.
"""

from datetime import datetime
from typing import Any

import httpx

from bench_engine.errors import (
    RateLimitError,
    TerminalError,
    TransientError,
    ValidationError,
)
from bench_engine.interfaces.system_under_test import (
    OperationReceipt,
    ReceiptStatus,
    SystemUnderTest,
)
from bench_engine.logging import get_logger, redact_sensitive

logger = get_logger(__name__)

_RECEIPT_FIELDS = frozenset({"operation_id", "status", "deduplicated", "completed_at"})


def _retry_after(response: httpx.Response) -> float | None:
    """Parse a Retry-After header given in seconds."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body)
    return str(body)


def _receipt(body: dict[str, Any], fallback_id: str | None) -> OperationReceipt:
    operation_id = str(body.get("operation_id") or fallback_id or "")
    completed_at = body.get("completed_at")

    return OperationReceipt(
        operation_id=operation_id,
        status=ReceiptStatus(body.get("status", ReceiptStatus.COMPLETED.value)),
        deduplicated=bool(body.get("deduplicated", False)),
        completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        details={k: v for k, v in body.items() if k not in _RECEIPT_FIELDS},
    )


class HttpSystemUnderTest(SystemUnderTest):
    """
    SystemUnderTest backed by an HTTP service.

    connect() opens the client and checks health; disconnect() closes it.
    Status 429 raises RateLimitError, 5xx TransientError, 401/403
    TerminalError and any other 4xx ValidationError. When lookup_path is set
    (e.g. "/operations/{operation_id}") the harness can ask what became of an
    operation whose acknowledgement was lost.
    """

    def __init__(
        self,
        base_url: str,
        *,
        operation_path: str = "/operations",
        health_path: str = "/health",
        lookup_path: str | None = None,
        timeout_s: float = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._operation_path = operation_path
        self._health_path = health_path
        self._lookup_path = lookup_path
        self._timeout_s = timeout_s
        self._headers = dict(headers or {})
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_s,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> None:
        await self._get_client()
        if not await self.health_check():
            raise TransientError(f"{self._base_url} is not healthy")
        logger.info("Connected to %s", self._base_url)

    async def disconnect(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
        logger.info("Disconnected from %s", self._base_url)

    # =========================================================================
    # Operations
    # =========================================================================

    async def execute_operation(self, params: dict[str, Any]) -> OperationReceipt:
        if not self.is_connected:
            raise TransientError("Not connected")

        client = await self._get_client()
        logger.debug("POST %s %s", self._operation_path, redact_sensitive(params))
        response = await client.post(self._operation_path, json=params)
        self._raise_for_status(response)

        return _receipt(response.json(), params.get("operation_id"))

    async def lookup_operation(self, operation_id: str) -> OperationReceipt | None:
        """
        GET lookup_path for operation_id.

        404 means the service never recorded the operation (a FAILED
        receipt). Without a configured lookup_path the outcome is unknown.
        """
        if self._lookup_path is None or not self.is_connected:
            return None

        client = await self._get_client()
        path = self._lookup_path.format(operation_id=operation_id)
        response = await client.get(path)
        if response.status_code == 404:
            return OperationReceipt(operation_id=operation_id, status=ReceiptStatus.FAILED)
        self._raise_for_status(response)
        return _receipt(response.json(), operation_id)

    async def health_check(self) -> bool:
        if not self.is_connected:
            return False

        client = await self._get_client()
        try:
            response = await client.get(self._health_path)
        except httpx.RequestError as exc:
            logger.warning("Health check failed: %s", exc)
            return False
        return response.status_code == 200

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        message = f"HTTP {status}: {_error_message(response)}"
        if status == 429:
            raise RateLimitError(message, retry_after_s=_retry_after(response))
        if status >= 500:
            raise TransientError(message)
        if status in (401, 403):
            raise TerminalError(message)
        raise ValidationError(message)
