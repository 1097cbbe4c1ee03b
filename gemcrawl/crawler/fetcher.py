"""
Gemini transport: TLS connection, request line, read to end of stream.
"""

import asyncio
import logging
import ssl
import time
from typing import Dict, Optional

from .url_resolver import Address


DEFAULT_MAX_RESPONSE_SIZE = 10 * 1024 * 1024
READ_CHUNK_SIZE = 8192
CLOSE_TIMEOUT = 1.0


class FetchError(Exception):
    """Base class for failures to obtain a response."""
    pass


class FetchTimeout(FetchError):
    """The fetch did not complete before its deadline."""
    pass


class FetchTransportError(FetchError):
    """Connection, handshake or read failure."""
    pass


def build_ssl_context(insecure: bool = False) -> ssl.SSLContext:
    """
    Build the TLS client context used for gemini connections.

    Certificate validation is on unless ``insecure`` is set. Many capsules
    use self-signed certificates, so crawling them requires the insecure
    mode to be requested explicitly.
    """
    if not insecure:
        return ssl.create_default_context(ssl.Purpose.SERVER_AUTH)

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class GeminiFetcher:
    """
    Fetches raw gemini responses one connection per request.
    """

    def __init__(self, insecure: bool = False,
                 max_response_size: int = DEFAULT_MAX_RESPONSE_SIZE,
                 ssl_context: Optional[ssl.SSLContext] = None):
        self.insecure = insecure
        self.max_response_size = max_response_size
        self.ssl_context = ssl_context
        self.logger = logging.getLogger(__name__)

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Prepare the TLS context."""
        if self.ssl_context is None:
            self.ssl_context = build_ssl_context(self.insecure)
            if self.insecure:
                self.logger.warning("Certificate verification is DISABLED (insecure mode)")
            self.logger.info("GeminiFetcher started")

    async def close(self):
        self.logger.debug("GeminiFetcher closed")

    async def fetch(self, address: Address) -> bytes:
        """
        Send the request line for ``address`` and read the whole response.

        Raises:
            FetchTransportError: on connection, handshake or read failure,
                or when the response exceeds the size limit.
        """
        if self.ssl_context is None:
            await self.start()

        self.stats['total_requests'] += 1
        start_time = time.time()
        writer = None
        completed = False

        try:
            reader, writer = await asyncio.open_connection(
                address.host,
                address.port,
                ssl=self.ssl_context,
                server_hostname=address.host
            )
            writer.write(address.request_line)
            await writer.drain()
            data = await self._read_to_end(reader, address)
            completed = True

        except FetchError:
            self.stats['failed_requests'] += 1
            raise
        except (OSError, ssl.SSLError, asyncio.IncompleteReadError) as e:
            self.stats['failed_requests'] += 1
            raise FetchTransportError(f"Error fetching {address}: {e}") from e
        finally:
            if writer is not None:
                if completed:
                    await self._close_writer(writer)
                else:
                    # Failed or cancelled fetches never wait on a TLS shutdown.
                    writer.transport.abort()

        self.stats['successful_requests'] += 1
        self.stats['total_bytes_downloaded'] += len(data)
        self.logger.debug(f"Fetched {address}: {len(data)} bytes in {time.time() - start_time:.2f}s")
        return data

    async def _read_to_end(self, reader: asyncio.StreamReader, address: Address) -> bytes:
        chunks = []
        size = 0
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > self.max_response_size:
                raise FetchTransportError(
                    f"Response from {address} exceeded {self.max_response_size} bytes"
                )
            chunks.append(chunk)
        return b''.join(chunks)

    async def _close_writer(self, writer: asyncio.StreamWriter):
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=CLOSE_TIMEOUT)
        except asyncio.TimeoutError:
            writer.transport.abort()
            self.logger.debug(f"Connection close timed out after {CLOSE_TIMEOUT}s, aborted")
        except asyncio.CancelledError:
            writer.transport.abort()
            raise
        except (OSError, ssl.SSLError) as e:
            # Servers commonly drop the connection without a TLS close_notify.
            self.logger.debug(f"Error closing connection: {e}")

    def get_stats(self) -> Dict[str, int]:
        return self.stats.copy()

    def reset_stats(self):
        for key in self.stats:
            self.stats[key] = 0
