from __future__ import annotations

import asyncio

import pytest

from tus_s3store.common.cancellation import CancellationToken, is_cancelled
from tus_s3store.common.ids import UuidFileIdProvider
from tus_s3store.common.results import ErrorKind, Result, ResultError


class TestResult:
    def test_success(self):
        result = Result.success(42)

        assert result.ok
        assert result.unwrap() == 42

    def test_failure_keeps_partial_value(self):
        result = Result.failure(ErrorKind.CANCELLED, "stopped", value=10)

        assert not result.ok
        assert result.value == 10
        with pytest.raises(ResultError, match="stopped") as exc_info:
            result.unwrap()
        assert exc_info.value.kind is ErrorKind.CANCELLED

    def test_failure_without_message_uses_kind(self):
        with pytest.raises(ResultError, match="not_found"):
            Result.failure(ErrorKind.NOT_FOUND).unwrap()


class TestCancellationToken:
    def test_is_cancelled(self):
        token = CancellationToken()

        assert not is_cancelled(None)
        assert not is_cancelled(token)
        token.cancel()
        assert is_cancelled(token)

    @pytest.mark.asyncio
    async def test_wait_times_out(self):
        assert await CancellationToken().wait(0.01) is False

    @pytest.mark.asyncio
    async def test_wait_returns_once_cancelled(self):
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.01, token.cancel)

        assert await token.wait(5) is True


@pytest.mark.asyncio
async def test_uuid_file_ids():
    provider = UuidFileIdProvider()

    first = await provider.create_id("")
    second = await provider.create_id("")

    assert first != second
    assert await provider.validate_id(first)
    assert not await provider.validate_id("../etc/passwd")
    assert not await provider.validate_id(first.upper())
    assert not await provider.validate_id("")
