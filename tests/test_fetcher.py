"""Tests for gemcrawl.crawler.fetcher."""

from __future__ import annotations

import asyncio
import ssl
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gemcrawl.crawler.fetcher import (
    FetchTransportError,
    GeminiFetcher,
    build_ssl_context,
)
from gemcrawl.crawler.url_resolver import resolve


ADDRESS = resolve(None, "gemini://example.org/page.gmi")


def _fake_connection(payload: bytes):
    reader = asyncio.StreamReader()
    reader.feed_data(payload)
    reader.feed_eof()

    writer = MagicMock()
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return reader, writer


class TestBuildSSLContext:
    def test_verifies_by_default(self):
        context = build_ssl_context()
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname

    def test_insecure_mode(self):
        context = build_ssl_context(insecure=True)
        assert context.verify_mode == ssl.CERT_NONE
        assert not context.check_hostname


class TestGeminiFetcher:
    @pytest.mark.asyncio
    async def test_sends_request_line_and_reads_to_end(self):
        reader, writer = _fake_connection(b"20 text/gemini\r\n# Hi\n")
        open_connection = AsyncMock(return_value=(reader, writer))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            async with GeminiFetcher() as fetcher:
                data = await fetcher.fetch(ADDRESS)

        assert data == b"20 text/gemini\r\n# Hi\n"
        writer.write.assert_called_once_with(b"gemini://example.org:1965/page.gmi\r\n")
        writer.close.assert_called_once()

        args, kwargs = open_connection.call_args
        assert args == ("example.org", 1965)
        assert kwargs["server_hostname"] == "example.org"
        assert kwargs["ssl"].verify_mode == ssl.CERT_REQUIRED
        assert fetcher.get_stats()["successful_requests"] == 1
        assert fetcher.get_stats()["total_bytes_downloaded"] == len(data)

    @pytest.mark.asyncio
    async def test_injected_ssl_context_used(self):
        reader, writer = _fake_connection(b"51 Not found\r\n")
        open_connection = AsyncMock(return_value=(reader, writer))
        context = build_ssl_context(insecure=True)

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            await GeminiFetcher(ssl_context=context).fetch(ADDRESS)

        assert open_connection.call_args.kwargs["ssl"] is context

    @pytest.mark.asyncio
    async def test_connection_error(self):
        open_connection = AsyncMock(side_effect=ConnectionRefusedError("refused"))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            fetcher = GeminiFetcher()
            with pytest.raises(FetchTransportError):
                await fetcher.fetch(ADDRESS)

        assert fetcher.get_stats()["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_handshake_error(self):
        open_connection = AsyncMock(side_effect=ssl.SSLCertVerificationError("bad cert"))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            with pytest.raises(FetchTransportError):
                await GeminiFetcher().fetch(ADDRESS)

    @pytest.mark.asyncio
    async def test_response_size_limit(self):
        reader, writer = _fake_connection(b"20 text/gemini\r\n" + b"x" * 100)
        open_connection = AsyncMock(return_value=(reader, writer))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            with pytest.raises(FetchTransportError):
                await GeminiFetcher(max_response_size=50).fetch(ADDRESS)

        writer.transport.abort.assert_called_once()
        writer.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_errors_ignored(self):
        reader, writer = _fake_connection(b"20 text/plain\r\nok")
        writer.wait_closed = AsyncMock(side_effect=ssl.SSLError("no close_notify"))
        open_connection = AsyncMock(return_value=(reader, writer))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            assert await GeminiFetcher().fetch(ADDRESS) == b"20 text/plain\r\nok"

    @pytest.mark.asyncio
    async def test_cancelled_fetch_aborts_connection(self):
        reader = asyncio.StreamReader()
        writer = MagicMock()
        writer.drain = AsyncMock()

        async def slow_close():
            await asyncio.sleep(3)

        writer.wait_closed = slow_close
        open_connection = AsyncMock(return_value=(reader, writer))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection):
            started = time.monotonic()
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(GeminiFetcher().fetch(ADDRESS), timeout=0.1)
            elapsed = time.monotonic() - started

        assert elapsed < 1.0
        writer.transport.abort.assert_called_once()

    @pytest.mark.asyncio
    async def test_slow_close_is_bounded(self):
        reader, writer = _fake_connection(b"20 text/plain\r\nok")

        async def hung_close():
            await asyncio.sleep(3600)

        writer.wait_closed = hung_close
        open_connection = AsyncMock(return_value=(reader, writer))

        with patch("gemcrawl.crawler.fetcher.asyncio.open_connection", open_connection), \
                patch("gemcrawl.crawler.fetcher.CLOSE_TIMEOUT", 0.05):
            assert await GeminiFetcher().fetch(ADDRESS) == b"20 text/plain\r\nok"

        writer.transport.abort.assert_called_once()

    def test_reset_stats(self):
        fetcher = GeminiFetcher()
        fetcher.stats["total_requests"] = 3
        fetcher.reset_stats()
        assert fetcher.get_stats()["total_requests"] == 0
