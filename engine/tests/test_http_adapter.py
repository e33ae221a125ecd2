"""
Tests for the HTTP system under test with mocked HTTP responses.
"""

import pytest
import respx
from httpx import ConnectError, Response

from bench_engine.adapters import HttpSystemUnderTest
from bench_engine.errors import (
    ErrorKind,
    RateLimitError,
    TerminalError,
    TransientError,
    ValidationError,
    classify_error,
)
from bench_engine.interfaces.system_under_test import ReceiptStatus

BASE_URL = "http://sut.test"


@pytest.fixture
def system() -> HttpSystemUnderTest:
    return HttpSystemUnderTest(BASE_URL, headers={"Authorization": "Bearer test"})


class TestLifecycle:
    """Tests for connect/disconnect."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_connect_checks_health(self, system: HttpSystemUnderTest) -> None:
        route = respx.get(f"{BASE_URL}/health").mock(return_value=Response(200, json={"ok": True}))

        await system.connect()

        assert route.called
        assert system.is_connected
        assert await system.health_check() is True

        await system.disconnect()
        assert system.is_connected is False
        assert await system.health_check() is False

    @respx.mock
    @pytest.mark.asyncio
    async def test_unhealthy_connect_raises(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(503))

        with pytest.raises(TransientError, match="not healthy"):
            await system.connect()

    @respx.mock
    @pytest.mark.asyncio
    async def test_unreachable_health_is_false(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(side_effect=ConnectError("refused"))

        with pytest.raises(TransientError):
            await system.connect()


class TestOperations:
    """Tests for execute_operation."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_receipt_from_body(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        route = respx.post(f"{BASE_URL}/operations").mock(
            return_value=Response(
                200,
                json={
                    "operation_id": "op-1",
                    "status": "completed",
                    "deduplicated": True,
                    "completed_at": "2024-01-01T00:00:00+00:00",
                    "tx_hash": "0xabc",
                },
            )
        )
        await system.connect()

        receipt = await system.execute_operation({"operation_id": "op-1", "amount": 5})

        assert route.called
        assert route.calls.last.request.headers["Authorization"] == "Bearer test"
        assert receipt.operation_id == "op-1"
        assert receipt.status == ReceiptStatus.COMPLETED
        assert receipt.deduplicated is True
        assert receipt.completed_at is not None
        assert receipt.details == {"tx_hash": "0xabc"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_operation_id_falls_back_to_params(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        respx.post(f"{BASE_URL}/operations").mock(return_value=Response(202, json={"status": "pending"}))
        await system.connect()

        receipt = await system.execute_operation({"operation_id": "op-2"})

        assert receipt.operation_id == "op-2"
        assert receipt.status == ReceiptStatus.PENDING
        assert receipt.is_completion is False

    @pytest.mark.asyncio
    async def test_not_connected(self, system: HttpSystemUnderTest) -> None:
        with pytest.raises(TransientError, match="Not connected"):
            await system.execute_operation({"operation_id": "op-3"})

    @respx.mock
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error,kind",
        [
            (429, RateLimitError, ErrorKind.RATE_LIMIT),
            (502, TransientError, ErrorKind.TRANSIENT),
            (401, TerminalError, ErrorKind.TERMINAL),
            (422, ValidationError, ErrorKind.VALIDATION),
        ],
    )
    async def test_status_mapping(
        self,
        system: HttpSystemUnderTest,
        status: int,
        error: type[Exception],
        kind: ErrorKind,
    ) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        respx.post(f"{BASE_URL}/operations").mock(
            return_value=Response(status, json={"error": "nope"})
        )
        await system.connect()

        with pytest.raises(error, match="nope") as exc_info:
            await system.execute_operation({"operation_id": "op-4"})

        assert classify_error(exc_info.value) == kind

    @respx.mock
    @pytest.mark.asyncio
    async def test_retry_after_parsed(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        respx.post(f"{BASE_URL}/operations").mock(
            return_value=Response(429, headers={"Retry-After": "12"}, text="slow down")
        )
        await system.connect()

        with pytest.raises(RateLimitError) as exc_info:
            await system.execute_operation({"operation_id": "op-5"})

        assert exc_info.value.retry_after_s == 12.0


class TestLookup:
    """Tests for looking up an earlier operation by id."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_lookup_completed(self) -> None:
        system = HttpSystemUnderTest(BASE_URL, lookup_path="/operations/{operation_id}")
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        route = respx.get(f"{BASE_URL}/operations/op-7").mock(
            return_value=Response(200, json={"status": "completed", "tx_hash": "0xdef"})
        )
        await system.connect()

        receipt = await system.lookup_operation("op-7")

        assert route.called
        assert receipt is not None
        assert receipt.operation_id == "op-7"
        assert receipt.status == ReceiptStatus.COMPLETED
        assert receipt.details == {"tx_hash": "0xdef"}

    @respx.mock
    @pytest.mark.asyncio
    async def test_lookup_unknown_operation_is_failed(self) -> None:
        system = HttpSystemUnderTest(BASE_URL, lookup_path="/operations/{operation_id}")
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        respx.get(f"{BASE_URL}/operations/op-8").mock(return_value=Response(404))
        await system.connect()

        receipt = await system.lookup_operation("op-8")

        assert receipt is not None
        assert receipt.status == ReceiptStatus.FAILED

    @respx.mock
    @pytest.mark.asyncio
    async def test_lookup_server_error_raises(self) -> None:
        system = HttpSystemUnderTest(BASE_URL, lookup_path="/operations/{operation_id}")
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        respx.get(f"{BASE_URL}/operations/op-9").mock(return_value=Response(503, text="busy"))
        await system.connect()

        with pytest.raises(TransientError):
            await system.lookup_operation("op-9")

    @respx.mock
    @pytest.mark.asyncio
    async def test_no_lookup_path_is_unknown(self, system: HttpSystemUnderTest) -> None:
        respx.get(f"{BASE_URL}/health").mock(return_value=Response(200))
        await system.connect()

        assert await system.lookup_operation("op-10") is None
