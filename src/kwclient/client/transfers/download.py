"""Resumable file downloads.

This module provides:
- DownloadState: state bits of a downloader
- ResumableDownloader: lazy, range-aware stream over one GET request
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from enum import IntFlag
from typing import TYPE_CHECKING

import httpx

from kwclient.client.errors import ProtocolError, TransportError, error_from_response
from kwclient.core.bitflag import BitFlag

if TYPE_CHECKING:
    from kwclient.client.auth import AuthSession

logger = logging.getLogger(__name__)


class DownloadState(IntFlag):
    """State bits of a downloader."""

    NONE = 0
    STARTED = 1 << 0
    EXHAUSTED = 1 << 1


def content_range_start(header: str | None) -> int | None:
    """Parse the first byte position of a Content-Range header.

    Args:
        header: Header value, e.g. "bytes 100-199/200".

    Returns:
        The start position, or None if the header is missing or malformed.
    """
    if not header:
        return None
    value = header.strip()
    if value.lower().startswith("bytes"):
        value = value[len("bytes"):].lstrip("=")
    start, sep, _ = value.strip().partition("-")
    if not sep:
        return None
    try:
        return int(start.strip())
    except ValueError:
        return None


class ResumableDownloader:
    """Readable stream over the body of a single GET request.

    Nothing is sent until the first read(). Seeking is only allowed before
    that, and sets the Range header so the download resumes at the given
    byte.

    Usage:
        with client.download(file_id) as stream:
            stream.seek(already_written)
            for data in iter(lambda: stream.read(65536), b""):
                out.write(data)
    """

    def __init__(self, session: AuthSession, request: httpx.Request, name: str = "") -> None:
        """Initialize the downloader.

        Args:
            session: Session providing the HTTP client settings.
            request: Prepared, authenticated GET request.
            name: Display name used in logs.
        """
        self._session = session
        self._request = request
        self._name = name or str(request.url)
        self._state: BitFlag[DownloadState] = BitFlag(DownloadState.NONE)
        self._offset = 0
        self._position = 0
        self._buffer = bytearray()
        self._client: httpx.Client | None = None
        self._response: httpx.Response | None = None
        self._chunks: Iterator[bytes] | None = None

    @property
    def started(self) -> bool:
        """Check if the request has been sent."""
        return self._state.has(DownloadState.STARTED)

    @property
    def request(self) -> httpx.Request:
        return self._request

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return not self.started

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Set the byte the download starts at.

        Raises:
            io.UnsupportedOperation: If the download has already started,
                or whence is not SEEK_SET.
            ValueError: If offset is negative.
        """
        if self.started:
            raise io.UnsupportedOperation("Cannot seek once the download has started")
        if whence != io.SEEK_SET:
            raise io.UnsupportedOperation("Only absolute seeks are supported")
        if offset < 0:
            raise ValueError("Can't read before the start of the file")

        if offset:
            self._request.headers["Range"] = f"bytes={offset}-"
        elif "Range" in self._request.headers:
            del self._request.headers["Range"]
        self._offset = offset
        self._position = offset
        return offset

    def tell(self) -> int:
        return self._position

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (everything left if size is negative).

        Raises:
            APIError: If the server refused the download.
            ProtocolError: If the server did not resume at the requested byte.
            TransportError: On network failure.
        """
        if not self.started:
            self._start()

        while (size < 0 or len(self._buffer) < size) and not self._state.has(
            DownloadState.EXHAUSTED
        ):
            self._fill()

        if size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        self._position += len(data)
        return data

    def _start(self) -> None:
        self._state.set(DownloadState.STARTED)
        client = self._session.new_client()
        try:
            response = client.send(self._request, stream=True)
        except httpx.TransportError as e:
            client.close()
            raise TransportError(f"GET {self._request.url}: {e}") from e

        self._client = client
        self._response = response

        if not response.is_success:
            response.read()
            error = error_from_response(response)
            self.close()
            if error is not None:
                raise error

        if self._offset > 0:
            start = content_range_start(response.headers.get("Content-Range"))
            if start != self._offset:
                self.close()
                raise ProtocolError(
                    f"Requested byte {self._offset}, got {start} instead."
                )
            logger.debug(f"Resuming download of {self._name} at byte {self._offset}")

        self._chunks = response.iter_bytes()

    def _fill(self) -> None:
        if self._chunks is None:
            self._state.set(DownloadState.EXHAUSTED)
            return
        try:
            chunk = next(self._chunks, None)
        except httpx.TransportError as e:
            self.close()
            raise TransportError(f"GET {self._request.url}: {e}") from e
        if chunk is None:
            self.close()
            return
        self._buffer.extend(chunk)

    def close(self) -> None:
        """Release the response and its client."""
        self._state.set(DownloadState.STARTED | DownloadState.EXHAUSTED)
        self._chunks = None
        if self._response is not None:
            self._response.close()
            self._response = None
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> ResumableDownloader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
