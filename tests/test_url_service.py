"""Tests for the code assignment engine.

Covers idempotent encoding, validation, bounded collision retries, the
concurrent insert race for a single URL, and direct decoding.
"""

import asyncio
from itertools import cycle
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from app.exceptions import CapacityError, CollisionRetryExhausted
from app.models import ShortURL
from app.shortcode import ALPHABET
from app.store import MappingStore
from app.url_service import (
    BLANK_URL_MESSAGE,
    INVALID_URL_MESSAGE,
    URL_TOO_LONG_MESSAGE,
    validate_original_url,
)


async def count_records(session) -> int:
    result = await session.execute(select(func.count()).select_from(ShortURL))
    return result.scalar_one()


# ============================================================================
# VALIDATION
# ============================================================================


@pytest.mark.parametrize(
    "url",
    [
        "https://www.example.com",
        "http://example.com/path?q=1&r=2",
        "https://sub.example.co.uk/a/b/c#frag",
        "http://localhost:3000/x",
        "http://intranet/x",
        "http://127.0.0.1/x",
    ],
)
def test_validate_accepts_http_and_https(url: str) -> None:
    assert validate_original_url(url) == []


@pytest.mark.parametrize("url", ["not-a-url", "ftp://example.com/file", "example.com", "https://"])
def test_validate_rejects_malformed_urls(url: str) -> None:
    assert validate_original_url(url) == [INVALID_URL_MESSAGE]


@pytest.mark.parametrize("url", [None, "", "   "])
def test_validate_rejects_blank(url) -> None:
    errors = validate_original_url(url)
    assert BLANK_URL_MESSAGE in errors
    assert INVALID_URL_MESSAGE in errors


def test_validate_rejects_overlong_url() -> None:
    url = "https://example.com/" + "a" * 2100
    assert URL_TOO_LONG_MESSAGE in validate_original_url(url)


# ============================================================================
# ENCODE
# ============================================================================


class TestEncode:
    @pytest.mark.asyncio
    async def test_encode_new_url_creates_record(self, db_session, make_service) -> None:
        service = make_service(db_session)

        result = await service.encode("https://www.new-url-for-encoding.com/path")

        assert result.success is True
        assert result.created is True
        assert result.record.original_url == "https://www.new-url-for-encoding.com/path"
        assert 6 <= len(result.record.short_code) <= 10
        assert all(c in ALPHABET for c in result.record.short_code)
        assert await count_records(db_session) == 1

    @pytest.mark.asyncio
    async def test_encode_is_idempotent(self, db_session, make_service) -> None:
        service = make_service(db_session)

        first = await service.encode("https://www.existing-url.com")
        second = await service.encode("https://www.existing-url.com")

        assert first.record.short_code == second.record.short_code
        assert second.created is False
        assert await count_records(db_session) == 1

    @pytest.mark.asyncio
    async def test_encode_invalid_url_returns_errors(self, db_session, make_service) -> None:
        service = make_service(db_session)

        result = await service.encode("not-a-valid-url")

        assert result.success is False
        assert result.record is None
        assert "Original url must be a valid URL" in result.errors
        assert await count_records(db_session) == 0

    @pytest.mark.asyncio
    async def test_encode_retries_after_code_collision(self, db_session, make_service) -> None:
        store = MappingStore(db_session, timeout=5)
        await store.try_insert("https://taken.example.com", "AAAAAA")
        candidates = iter(["AAAAAA", "BBBBBB"])
        service = make_service(db_session, code_generator=lambda length: next(candidates))

        result = await service.encode("https://fresh.example.com")

        assert result.success is True
        assert result.record.short_code == "BBBBBB"
        assert await count_records(db_session) == 2

    @pytest.mark.asyncio
    async def test_encode_raises_capacity_error_when_retries_exhausted(
        self, db_session, make_service, settings
    ) -> None:
        store = MappingStore(db_session, timeout=5)
        await store.try_insert("https://taken.example.com", "AAAAAA")
        calls = []

        def colliding_generator(length: int) -> str:
            calls.append(length)
            return "AAAAAA"

        service = make_service(db_session, code_generator=colliding_generator)

        with pytest.raises(CollisionRetryExhausted) as exc_info:
            await service.encode("https://fresh.example.com")

        assert isinstance(exc_info.value, CapacityError)
        assert exc_info.value.attempts == settings.CODE_GENERATION_MAX_ATTEMPTS
        assert len(calls) == settings.CODE_GENERATION_MAX_ATTEMPTS
        assert await count_records(db_session) == 1

    @pytest.mark.asyncio
    async def test_encode_returns_winner_when_url_inserted_concurrently(
        self, db_session, session_factory, make_service
    ) -> None:
        # The other writer commits between this service's lookup and insert.
        async with session_factory() as other:
            winner = await MappingStore(other, timeout=5).try_insert("https://race.example.com", "WINNER")
        winning_code = winner.record.short_code

        class StaleReadStore(MappingStore):
            async def find_by_original_url(self, original_url):
                self.find_by_original_url = super().find_by_original_url
                return None

        service = make_service(db_session, code_generator=lambda length: "LOSER1")
        service._store = StaleReadStore(db_session, timeout=5)

        result = await service.encode("https://race.example.com")

        assert result.success is True
        assert result.created is False
        assert result.record.short_code == winning_code
        assert await count_records(db_session) == 1


# ============================================================================
# DECODE
# ============================================================================


class TestDecode:
    @pytest.mark.asyncio
    async def test_decode_round_trip(self, db_session, make_service) -> None:
        service = make_service(db_session)
        encoded = await service.encode("https://www.decoded-url.com")

        record = await service.decode(encoded.record.short_code)

        assert record.original_url == "https://www.decoded-url.com"

    @pytest.mark.asyncio
    async def test_decode_unknown_code_returns_none(self, db_session, make_service) -> None:
        service = make_service(db_session)

        assert await service.decode("unknown-code") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("short_code", ["", "abc", "abc/12", "x" * 11])
    async def test_decode_malformed_code_skips_store(self, db_session, make_service, short_code) -> None:
        service = make_service(db_session)
        service._store = MagicMock(spec=MappingStore)

        assert await service.decode(short_code) is None
        service._store.find_by_code.assert_not_called()


# ============================================================================
# CONCURRENCY
# ============================================================================


class TestConcurrentEncode:
    @pytest.mark.asyncio
    async def test_distinct_urls_get_distinct_codes(self, session_factory, make_service) -> None:
        urls = [f"https://example.com/page/{i}" for i in range(10)]

        async def encode(url: str):
            async with session_factory() as session:
                return (await make_service(session).encode(url)).record.short_code

        codes = await asyncio.gather(*(encode(url) for url in urls))

        assert len(set(codes)) == len(urls)
        async with session_factory() as session:
            assert await count_records(session) == len(urls)

    @pytest.mark.asyncio
    async def test_same_url_yields_one_record(self, session_factory, make_service) -> None:
        async def encode():
            async with session_factory() as session:
                return (await make_service(session).encode("https://same.example.com")).record.short_code

        codes = await asyncio.gather(*(encode() for _ in range(8)))

        assert len(set(codes)) == 1
        async with session_factory() as session:
            assert await count_records(session) == 1

    @pytest.mark.asyncio
    async def test_colliding_generators_still_assign_unique_codes(self, session_factory, make_service) -> None:
        pool = ["CODE01", "CODE02", "CODE03", "CODE04"]

        async def encode(index: int):
            generator = cycle(pool[index:] + pool[:index])
            async with session_factory() as session:
                service = make_service(session, code_generator=lambda length: next(generator))
                return (await service.encode(f"https://example.com/{index}")).record.short_code

        codes = await asyncio.gather(*(encode(i) for i in range(4)))

        assert sorted(codes) == pool
