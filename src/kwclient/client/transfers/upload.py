"""Resumable chunked uploads.

This module provides:
- MultipartChunk: multipart/form-data body of one chunk, restageable
- ChunkedUploader: uploads a file through an upload record, resuming
  from the progress the server reports
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Iterator
from typing import IO, TYPE_CHECKING, Any

from kwclient.client.api import APIRequest, Query, StreamBody, entity_id
from kwclient.client.errors import (
    EmptyUploadResponseError,
    ProtocolError,
    UploadIDNotFoundError,
)

if TYPE_CHECKING:
    from kwclient.client.api import APIClient, UploadRecord
    from kwclient.client.monitor import TransferMonitor

logger = logging.getLogger(__name__)

UPLOAD_API_VERSION = 7
RELAY_SIZE = 4096
COMPRESSION_MODE = "NORMAL"


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', "%22").replace("\r", "%0D").replace("\n", "%0A")


class MultipartChunk:
    """multipart/form-data body carrying one chunk of a source stream.

    The body is produced by open(), which seeks the source back to the
    chunk start on every call. The same body can therefore be sent again
    after a failed attempt.
    """

    def __init__(
        self,
        source: IO[bytes] | Any,
        start: int,
        size: int,
        index: int,
        filename: str,
        boundary: str | None = None,
    ) -> None:
        """Initialize the chunk body.

        Args:
            source: Seekable stream holding the file content.
            start: Byte position of the chunk in source.
            size: Chunk length in bytes.
            index: 1-based chunk index.
            filename: File name sent with the content part.
            boundary: Multipart boundary (random if not given).
        """
        self.source = source
        self.start = start
        self.size = size
        self.index = index
        self.filename = filename
        self.boundary = boundary or secrets.token_hex(16)
        self._head = self._render_head()
        self._tail = f"\r\n--{self.boundary}--\r\n".encode()

    def _render_head(self) -> bytes:
        fields = {
            "compressionMode": COMPRESSION_MODE,
            "index": str(self.index),
            "compressionSize": str(self.size),
            "originalSize": str(self.size),
        }
        parts = [
            f'--{self.boundary}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'
            for name, value in fields.items()
        ]
        parts.append(
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="content"; filename="{_quote(self.filename)}"\r\n'
            "Content-Type: application/octet-stream\r\n\r\n"
        )
        return "".join(parts).encode("utf-8")

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def length(self) -> int:
        """Exact length of the encoded body."""
        return len(self._head) + self.size + len(self._tail)

    def open(self) -> Iterator[bytes]:
        """Stream the encoded body, relaying the content in small blocks.

        Raises:
            ProtocolError: If the source ends before the chunk does.
        """
        self.source.seek(self.start)
        yield self._head
        remaining = self.size
        while remaining > 0:
            data = self.source.read(min(RELAY_SIZE, remaining))
            if not data:
                raise ProtocolError(
                    f"{self.filename}: source ended {remaining} bytes before chunk {self.index} did"
                )
            remaining -= len(data)
            yield data
        yield self._tail

    def as_body(self) -> StreamBody:
        return StreamBody(content_type=self.content_type, length=self.length, open=self.open)


class ChunkedUploader:
    """Uploads file content in chunks through a kiteworks upload record.

    The upload record (created with APIClient.initiate_upload or
    APIClient.initiate_version_upload) is always re-read from the server,
    so an interrupted upload resumes at the first chunk the server has
    not acknowledged.
    """

    def __init__(self, client: APIClient, monitor: TransferMonitor | None = None) -> None:
        """Initialize the uploader.

        Args:
            client: API client of the uploading session.
            monitor: Optional monitor the upload is reported to.
        """
        self._client = client
        self._monitor = monitor

    def upload(self, filename: str, upload_id: int, source: IO[bytes] | Any) -> int:
        """Upload (or resume uploading) a file.

        Args:
            filename: Name sent with every chunk.
            upload_id: ID of the upload record.
            source: Seekable stream positioned anywhere; the uploader seeks
                it to each chunk start.

        Returns:
            ID of the uploaded file.

        Raises:
            UploadIDNotFoundError: If the server does not know upload_id.
            EmptyUploadResponseError: If the final chunk returned no file.
            APIError, TransportError: If a chunk could not be submitted.
        """
        record = self._client.locate_upload(upload_id)
        if record is None or record.id != upload_id:
            raise UploadIDNotFoundError(upload_id)

        total = record.total_size
        if record.finished or (total > 0 and record.uploaded_size >= total):
            logger.info(f"Upload {upload_id} of {filename} is already complete")
            if not record.file_id:
                raise EmptyUploadResponseError()
            return record.file_id

        stream = source
        if self._monitor is not None:
            stream = self._monitor.track(filename, total, source)

        try:
            return self._stream_chunks(filename, record, stream)
        finally:
            if self._monitor is not None:
                stream.finish()

    def _stream_chunks(self, filename: str, record: UploadRecord, stream: Any) -> int:
        total = record.total_size
        chunk_size = record.chunk_size
        index = record.uploaded_chunks
        transferred = record.uploaded_size

        if index > 0 and transferred > 0:
            logger.info(
                f"Resuming upload of {filename}: {index}/{record.total_chunks} chunks already uploaded"
            )
            stream.seek(chunk_size * index)
        else:
            logger.info(f"Uploading {filename} ({total} bytes, {record.total_chunks} chunks)")

        path = "/" + record.uri.lstrip("/")
        result_id = 0

        while transferred < total or total == 0:
            last = index >= record.total_chunks - 1
            size = total - transferred if last else chunk_size
            chunk = MultipartChunk(stream, chunk_size * index, size, index + 1, filename)

            params = (Query({"returnEntity": True, "mode": "full"}),) if last else ()
            result = self._client.call(
                APIRequest(
                    "POST",
                    path,
                    api_version=UPLOAD_API_VERSION,
                    params=params,
                    stream=chunk.as_body(),
                    label=f"{filename} chunk {index + 1}/{record.total_chunks}",
                ),
                into=entity_id,
            )
            logger.debug(f"Uploaded chunk {index + 1}/{record.total_chunks} of {filename}")

            result_id = result or 0
            index += 1
            transferred += size
            if total == 0:
                break

        if not result_id:
            raise EmptyUploadResponseError()
        logger.info(f"Uploaded {filename} as file {result_id}")
        return result_id
