"""HTTP client for the kiteworks REST API.

This module provides:
- Query, PostForm, PostJSON: the three ways a parameter set is encoded
- APIRequest: one logical API operation
- APIClient: executes operations with retry, reauthentication and
  error classification, plus the typed file and upload endpoints
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar, overload
from urllib.parse import urlencode

import httpx

from kwclient.client.errors import (
    RETRYABLE,
    APIError,
    ProtocolError,
    TransportError,
    error_from_response,
)
from kwclient.client.trace import trace_request, trace_response
from kwclient.core.chunking import total_chunks

if TYPE_CHECKING:
    from kwclient.client.auth import AuthSession
    from kwclient.client.monitor import MonitoredStream, TransferMonitor
    from kwclient.client.transfers.download import ResumableDownloader
    from kwclient.core.config import SessionConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

UPLOAD_FIELDS = "(id,totalSize,totalChunks,uploadedChunks,uploadedSize,finished,uri,fileId)"


class ParamKind(Enum):
    """Where a parameter set is encoded."""

    QUERY = "query"
    FORM = "form"
    JSON = "json"


def spanner(value: Any) -> str:
    """Render a parameter value, joining lists with commas."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


@dataclass(frozen=True)
class _Params:
    values: Mapping[str, Any] = field(default_factory=dict)
    kind: ParamKind = field(init=False)


@dataclass(frozen=True)
class Query(_Params):
    """Parameters merged into the URL query string."""

    kind: ParamKind = field(default=ParamKind.QUERY, init=False)


@dataclass(frozen=True)
class PostForm(_Params):
    """Parameters sent as an application/x-www-form-urlencoded body."""

    kind: ParamKind = field(default=ParamKind.FORM, init=False)


@dataclass(frozen=True)
class PostJSON(_Params):
    """Parameters sent as a JSON body."""

    kind: ParamKind = field(default=ParamKind.JSON, init=False)


Param = Query | PostForm | PostJSON


@dataclass
class StreamBody:
    """A request body produced afresh for every attempt.

    Attributes:
        content_type: Content-Type header of the body.
        length: Exact body length in bytes.
        open: Returns a new iterator over the body bytes. Each call must
            yield the same bytes, so the body can be resent.
    """

    content_type: str
    length: int
    open: Callable[[], Iterator[bytes]]


@dataclass
class APIRequest:
    """One logical kiteworks API operation.

    Attributes:
        method: HTTP method.
        path: API path, e.g. "/rest/files/42".
        api_version: Value of the API version header (0 for the default).
        params: Query, PostForm and PostJSON parameter sets. Any number of
            Query sets may be given, but at most one body encoding.
        stream: Streaming body, exclusive with PostForm and PostJSON.
        label: Short description used in logs.
    """

    method: str
    path: str
    api_version: int = 0
    params: tuple[Param, ...] = ()
    stream: StreamBody | None = None
    label: str = ""

    def __post_init__(self) -> None:
        """Validate parameter kinds."""
        self.method = self.method.upper()
        self.params = tuple(self.params)
        bodies = 0
        for param in self.params:
            if not isinstance(param, (Query, PostForm, PostJSON)):
                raise TypeError(f"Unknown request parameter: {param!r}")
            if param.kind is not ParamKind.QUERY:
                bodies += 1
        if self.stream is not None:
            bodies += 1
        if bodies > 1:
            raise ValueError(f"{self.method} {self.path}: more than one request body")

    @property
    def query(self) -> dict[str, str]:
        """Merged query parameters."""
        merged: dict[str, str] = {}
        for param in self.params:
            if param.kind is ParamKind.QUERY:
                merged.update({k: spanner(v) for k, v in param.values.items()})
        return merged

    @property
    def body(self) -> PostForm | PostJSON | None:
        """The form or JSON parameter set, if any."""
        for param in self.params:
            if param.kind is not ParamKind.QUERY:
                return param  # type: ignore[return-value]
        return None


@dataclass
class FileInfo:
    """File metadata from server."""

    id: int
    name: str
    size: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileInfo:
        """Create from API response dictionary."""
        return cls(
            id=int(data.get("id") or 0),
            name=data.get("name") or "",
            size=int(data.get("size") or 0),
        )


@dataclass
class UploadRecord:
    """Server bookkeeping of a chunked upload."""

    id: int
    total_size: int
    total_chunks: int
    uploaded_size: int
    uploaded_chunks: int
    finished: bool
    uri: str
    file_id: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadRecord:
        """Create from API response dictionary."""
        return cls(
            id=int(data.get("id") or 0),
            total_size=int(data.get("totalSize") or 0),
            total_chunks=int(data.get("totalChunks") or 0),
            uploaded_size=int(data.get("uploadedSize") or 0),
            uploaded_chunks=int(data.get("uploadedChunks") or 0),
            finished=bool(data.get("finished")),
            uri=data.get("uri") or "",
            file_id=int(data.get("fileId") or 0),
        )

    @property
    def chunk_size(self) -> int:
        """Chunk size the server expects for every chunk but the last."""
        if self.total_chunks <= 0:
            return self.total_size
        return self.total_size // self.total_chunks


def entity_id(data: Any) -> int:
    """Extract the "id" of an entity response (0 if absent)."""
    if not isinstance(data, dict):
        return 0
    return int(data.get("id") or 0)


class APIClient:
    """Executes kiteworks API calls for one session.

    Usage:
        client = APIClient(AuthSession(config, "user@example.com"))
        info = client.file_info(42)
    """

    def __init__(self, session: AuthSession) -> None:
        """Initialize the client.

        Args:
            session: Authenticated session the calls are made for.
        """
        self._session = session

    @property
    def session(self) -> AuthSession:
        """Session the calls are made for."""
        return self._session

    @property
    def config(self) -> SessionConfig:
        """Session configuration."""
        return self._session.config

    # === Call engine ===

    @overload
    def call(self, api_req: APIRequest) -> None: ...

    @overload
    def call(self, api_req: APIRequest, into: Callable[[Any], T]) -> T | None: ...

    def call(
        self,
        api_req: APIRequest,
        into: Callable[[Any], T] | None = None,
    ) -> T | None:
        """Execute an API call.

        Transport failures and server-side internal errors are retried.
        Token errors trigger reauthentication, on the last attempt too, so
        a renewed token is stored even when the call itself fails.
        Attempt n is followed by a pause of n² seconds.

        Args:
            api_req: Operation to execute.
            into: Converts the decoded JSON body into the result.

        Returns:
            Converted body, or None when the server returned no content.

        Raises:
            APIError: Classified error returned by the server.
            TransportError: Network failure on the last attempt.
            ProtocolError: Response body could not be decoded.
            ReauthenticationError: Token could not be renewed. The stored
                token has been deleted.
        """
        url = self._session.url(api_req.path)
        headers = self._session.request_headers(api_req.api_version)
        query = api_req.query
        attempts = self.config.retries + 1
        label = api_req.label or f"{api_req.method} {api_req.path}"

        if self.config.trace:
            trace_request(
                self._session.username,
                api_req.method,
                str(httpx.URL(url, params=query or None)),
                headers,
                dict(api_req.body.values) if api_req.body else None,
            )

        for attempt in range(1, attempts + 1):
            try:
                response = self._send(api_req, url, headers, query)
                return self._decode(response, into)
            except TransportError as e:
                if attempt == attempts:
                    raise
                logger.debug(
                    f"(CALL ERROR) {self._session} -> {label}: {e} ({attempt}/{attempts})"
                )
            except APIError as e:
                if not e.has(RETRYABLE):
                    raise
                logger.debug(
                    f"(CALL ERROR) {self._session} -> {label}: {e} ({attempt}/{attempts})"
                )
                if e.is_token_error:
                    # Raises ReauthenticationError (token deleted) when no
                    # new token can be obtained.
                    try:
                        self._session.reauthenticate(headers, e)
                    except TransportError as reauth_error:
                        if attempt == attempts:
                            raise
                        logger.debug(
                            f"(REAUTH ERROR) {self._session} -> {label}: {reauth_error}"
                        )
                if attempt == attempts:
                    raise
            time.sleep(attempt * attempt)

        raise RuntimeError("Unexpected retry loop exit")

    def _send(
        self,
        api_req: APIRequest,
        url: str,
        headers: dict[str, str],
        query: dict[str, str],
    ) -> httpx.Response:
        """Send one attempt, restaging the body."""
        request_headers = dict(headers)
        content: bytes | Iterable[bytes] | None = None

        body = api_req.body
        if isinstance(body, PostForm):
            request_headers["Content-Type"] = "application/x-www-form-urlencoded"
            content = urlencode({k: spanner(v) for k, v in body.values.items()}).encode("ascii")
        elif isinstance(body, PostJSON):
            request_headers["Content-Type"] = "application/json"
            content = json.dumps(dict(body.values)).encode("utf-8")
        elif api_req.stream is not None:
            request_headers["Content-Type"] = api_req.stream.content_type
            request_headers["Content-Length"] = str(api_req.stream.length)
            content = api_req.stream.open()

        try:
            with self._session.new_client() as client:
                request = client.build_request(
                    api_req.method,
                    url,
                    params=query or None,
                    headers=request_headers,
                    content=content,
                )
                response = client.send(request)
        except httpx.TransportError as e:
            raise TransportError(f"{self.config.host}: {e}") from e

        if self.config.trace:
            trace_response(f"{response.status_code} {response.reason_phrase}", response.content)

        error = error_from_response(response)
        if error is not None:
            raise error
        return response

    def _decode(self, response: httpx.Response, into: Callable[[Any], T] | None) -> T | None:
        if into is None or not response.content.strip():
            return None
        try:
            data = response.json()
        except ValueError as e:
            hint = "" if self.config.trace else " (try again with --trace)"
            raise ProtocolError(
                f"I cannot understand what {self.config.host} is saying{hint}: {e}"
            ) from e
        try:
            return into(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ProtocolError(
                f"Unexpected response from {self.config.host}: {e}"
            ) from e

    # === Files ===

    def file_info(self, file_id: int) -> FileInfo:
        """Get file metadata.

        Raises:
            APIError: If the file does not exist.
        """
        info = self.call(
            APIRequest("GET", f"/rest/files/{file_id}"),
            into=FileInfo.from_dict,
        )
        if info is None:
            raise ProtocolError(f"Empty metadata for file {file_id}")
        return info

    def download(
        self,
        file_id: int,
        monitor: TransferMonitor | None = None,
    ) -> ResumableDownloader | MonitoredStream:
        """Open the content of a file for reading.

        The returned stream issues the GET on first read; seek() before
        reading to resume a partial download.

        Args:
            file_id: File to download.
            monitor: Optional monitor the download is reported to.
        """
        from kwclient.client.transfers.download import ResumableDownloader

        info = self.file_info(file_id)
        request = self._session.new_request("GET", f"/rest/files/{file_id}/content", 7)
        downloader = ResumableDownloader(self._session, request, name=info.name)
        if monitor is None:
            return downloader
        return monitor.track(info.name, info.size, downloader)

    # === Uploads ===

    def initiate_upload(self, folder_id: int, filename: str, size: int) -> int:
        """Create an upload of a new file into a folder.

        Returns:
            Upload ID.
        """
        return self._initiate(
            f"/rest/folders/{folder_id}/actions/initiateUpload", filename, size, 5
        )

    def initiate_version_upload(self, file_id: int, filename: str, size: int) -> int:
        """Create an upload of a new version of an existing file.

        Returns:
            Upload ID.
        """
        return self._initiate(f"/rest/files/{file_id}/actions/initiateUpload", filename, size)

    def _initiate(self, path: str, filename: str, size: int, api_version: int = 0) -> int:
        upload_id = self.call(
            APIRequest(
                "POST",
                path,
                api_version=api_version,
                params=(
                    PostJSON({
                        "filename": filename,
                        "totalSize": size,
                        "totalChunks": total_chunks(size, self.config.max_chunk_size),
                    }),
                    Query({"returnEntity": True}),
                ),
            ),
            into=entity_id,
        )
        if not upload_id:
            raise ProtocolError(f"No upload ID returned for {filename}")
        logger.debug(f"Initiated upload {upload_id} for {filename} ({size} bytes)")
        return upload_id

    def locate_upload(self, upload_id: int) -> UploadRecord | None:
        """Fetch the server's record of an upload.

        Returns:
            The record, or None if the server does not know the upload.
        """
        def first_record(data: dict[str, Any]) -> UploadRecord | None:
            records = data.get("data") or []
            return UploadRecord.from_dict(records[0]) if records else None

        return self.call(
            APIRequest(
                "GET",
                "/rest/uploads",
                params=(Query({"locate_id": upload_id, "limit": 1, "with": UPLOAD_FIELDS}),),
            ),
            into=first_record,
        )

    def upload(
        self,
        filename: str,
        upload_id: int,
        source: Any,
        monitor: TransferMonitor | None = None,
    ) -> int:
        """Upload (or resume uploading) a file's content.

        See ChunkedUploader.upload.
        """
        from kwclient.client.transfers.upload import ChunkedUploader

        return ChunkedUploader(self, monitor=monitor).upload(filename, upload_id, source)
