"""
Babel RPC Client

Generic plumbing behind every endpoint wrapper: builds rpc, upload and
download requests against a named host, sends them with httpx, and maps
failures onto a single CallError taxonomy.

Requests start as soon as they are built (an asyncio task on the running
loop). Completion is delivered once, either by awaiting the request or
through a handler passed to ``response``.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import uuid
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, TypeVar

import httpx
import structlog

from dropbox_babel.kernel.serialization import (
    Serializer,
    ascii_escape,
    dump_json,
    parse_json,
    utf8_decode,
)

logger = structlog.get_logger()

R = TypeVar("R")
E = TypeVar("E")

REQUEST_ID_HEADER = "X-Dropbox-Request-Id"
API_ARG_HEADER = "Dropbox-Api-Arg"
API_RESULT_HEADER = "Dropbox-Api-Result"
NOAUTH_HOST = "notify"
CHUNK_SIZE = 64 * 1024

ProgressHandler = Callable[[int, int, int], None]


# =============================================================================
# Call errors
# =============================================================================


def _prefix(request_id: str | None) -> str:
    return f"[request-id {request_id}] " if request_id else ""


@dataclass(frozen=True)
class InternalServerError:
    status_code: int
    message: str | None = None
    request_id: str | None = None

    def __str__(self) -> str:
        ret = f"{_prefix(self.request_id)}Internal Server Error {self.status_code}"
        if self.message:
            ret += f": {self.message}"
        return ret


@dataclass(frozen=True)
class BadInputError:
    message: str | None = None
    request_id: str | None = None

    def __str__(self) -> str:
        ret = f"{_prefix(self.request_id)}Bad Input"
        if self.message:
            ret += f": {self.message}"
        return ret


@dataclass(frozen=True)
class RateLimitError:
    def __str__(self) -> str:
        return "Rate limited"


@dataclass(frozen=True)
class HTTPError:
    status_code: int | None = None
    message: str | None = None
    request_id: str | None = None

    def __str__(self) -> str:
        ret = f"{_prefix(self.request_id)}HTTP Error"
        if self.status_code is not None:
            ret += f" {self.status_code}"
        if self.message:
            ret += f": {self.message}"
        return ret


@dataclass(frozen=True)
class RouteError(Generic[E]):
    error: E
    request_id: str | None = None

    def __str__(self) -> str:
        return f"{_prefix(self.request_id)}API route error - {self.error}"


@dataclass(frozen=True)
class TransportError:
    error: BaseException | None = None

    def __str__(self) -> str:
        if self.error is not None:
            return str(self.error)
        return "An unknown system error"


CallError = (
    InternalServerError
    | BadInputError
    | RateLimitError
    | HTTPError
    | RouteError
    | TransportError
)


@dataclass(frozen=True)
class CallResult(Generic[R]):
    """Outcome of one request: exactly one of ``value`` / ``error`` is meaningful."""

    value: R | None = None
    error: CallError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Upload bodies
# =============================================================================


@dataclass(frozen=True)
class UploadData:
    data: bytes


@dataclass(frozen=True)
class UploadFile:
    path: Path | str


@dataclass(frozen=True)
class UploadStream:
    source: Iterable[bytes] | AsyncIterable[bytes]


UploadBody = UploadData | UploadFile | UploadStream


# =============================================================================
# Client
# =============================================================================


class BabelClient:
    """
    Base client for Babel-described APIs.

    Args:
        http_client: Shared httpx client used for every request
        base_hosts: Host name ("meta", "content", "notify") -> base URL
    """

    def __init__(self, http_client: httpx.AsyncClient, base_hosts: dict[str, str]):
        self.http_client = http_client
        self.base_hosts = base_hosts

    def additional_headers(self, noauth: bool) -> dict[str, str]:
        return {}

    def url_for(self, host: str, route: str) -> str:
        try:
            return f"{self.base_hosts[host]}{route}"
        except KeyError:
            raise ValueError(f"Unknown Babel host: {host}") from None

    def headers_for(self, host: str, headers: dict[str, str]) -> dict[str, str]:
        merged = dict(headers)
        merged.update(self.additional_headers(host == NOAUTH_HOST))
        return merged


def _api_arg(params: Any) -> str:
    return ascii_escape(utf8_decode(dump_json(params)))


class BabelRequest(Generic[R, E]):
    """
    A request in flight.

    These objects are built by the endpoint wrappers; callers await them
    or attach a completion handler with ``response``.
    """

    def __init__(
        self,
        client: BabelClient,
        host: str,
        route: str,
        response_serializer: Serializer[R],
        error_serializer: Serializer[E],
    ):
        self.client = client
        self.host = host
        self.route = route
        self.url = client.url_for(host, route)
        self.response_serializer = response_serializer
        self.error_serializer = error_serializer
        self._progress_handler: ProgressHandler | None = None
        self._task: asyncio.Task[CallResult[Any]] | None = None

    def _start(self) -> None:
        logger.debug(
            "Dispatching Babel request",
            style=type(self).__name__,
            host=self.host,
            route=self.route,
        )
        self._task = asyncio.get_running_loop().create_task(self._execute())

    async def _execute(self) -> CallResult[Any]:
        try:
            result = await self._perform()
        except Exception as e:
            logger.exception("Babel request raised", route=self.route)
            result = CallResult(error=TransportError(e))
        if result.error is not None:
            logger.info(
                "Babel request failed",
                route=self.route,
                error_type=type(result.error).__name__,
                request_id=getattr(result.error, "request_id", None),
            )
        return result

    async def _perform(self) -> CallResult[Any]:
        raise NotImplementedError

    def handle_response_error(
        self,
        response: httpx.Response | None,
        data: bytes | None,
        error: BaseException | None,
    ) -> CallError:
        """Map a failed exchange onto a CallError."""
        request_id = response.headers.get(REQUEST_ID_HEADER) if response is not None else None

        if response is None:
            message = utf8_decode(data) if data else (str(error) if error else None)
            return HTTPError(None, message, request_id)

        code = response.status_code
        message = utf8_decode(data) if data else ""

        if 500 <= code <= 599:
            return InternalServerError(code, message, request_id)
        if code == 400:
            return BadInputError(message, request_id)
        if code == 429:
            return RateLimitError()
        if code in (403, 404, 409):
            try:
                json_body = parse_json(data or b"")
                route_error = self.error_serializer.deserialize(json_body["error"])
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(
                    "Failed to parse route error",
                    route=self.route,
                    status_code=code,
                    error=str(e),
                )
                return HTTPError(code, message, request_id)
            return RouteError(route_error, request_id)
        if code == 200:
            return TransportError(error)
        return HTTPError(code, "An error occurred.", request_id)

    def _deserialize_body(self, response: httpx.Response) -> CallResult[Any]:
        try:
            json_body = parse_json(response.content) if response.content else None
            value = self.response_serializer.deserialize(json_body)
        except ValueError as e:
            return CallResult(error=self.handle_response_error(response, response.content, e))
        return CallResult(value=value)

    def progress(self, handler: ProgressHandler | None = None) -> BabelRequest[R, E]:
        """
        Register a progress handler.

        The handler receives (bytes in this chunk, total bytes so far,
        total bytes expected or -1 when unknown).

        Returns:
            The request, for chaining
        """
        self._progress_handler = handler
        return self

    def _report_progress(self, chunk: int, total: int, expected: int) -> None:
        if self._progress_handler is not None:
            self._progress_handler(chunk, total, expected)

    def response(
        self,
        completion_handler: Callable[[Any, CallError | None], None],
    ) -> BabelRequest[R, E]:
        """
        Register a completion handler.

        Called once with ``(value, None)`` or ``(None, error)``. Not
        called if the request is cancelled.

        Returns:
            The request, for chaining
        """
        if self._task is None:
            raise RuntimeError("Request has not been started")

        def _deliver(task: asyncio.Task[CallResult[Any]]) -> None:
            if task.cancelled() or task.exception() is not None:
                return
            result = task.result()
            if result.error is not None:
                completion_handler(None, result.error)
            else:
                completion_handler(result.value, None)

        self._task.add_done_callback(_deliver)
        return self

    async def result(self) -> CallResult[Any]:
        if self._task is None:
            raise RuntimeError("Request has not been started")
        return await self._task

    def __await__(self):
        return self.result().__await__()

    def cancel(self) -> bool:
        """Abort the underlying HTTP exchange."""
        if self._task is None:
            return False
        return self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()


class BabelRpcRequest(BabelRequest[R, E]):
    """An rpc-style request: JSON arguments in, JSON result out."""

    def __init__(
        self,
        client: BabelClient,
        host: str,
        route: str,
        params: Any,
        response_serializer: Serializer[R],
        error_serializer: Serializer[E],
    ):
        super().__init__(client, host, route, response_serializer, error_serializer)
        self.headers = client.headers_for(host, {"Content-Type": "application/json"})
        self.body = dump_json(params)
        self._start()

    async def _perform(self) -> CallResult[Any]:
        try:
            response = await self.client.http_client.post(
                self.url,
                content=self.body,
                headers=self.headers,
            )
        except httpx.RequestError as e:
            return CallResult(error=self.handle_response_error(None, None, e))

        if not response.is_success:
            return CallResult(error=self.handle_response_error(response, response.content, None))
        return self._deserialize_body(response)


class BabelUploadRequest(BabelRequest[R, E]):
    """An upload-style request: raw bytes in, arguments in a header, JSON result out."""

    def __init__(
        self,
        client: BabelClient,
        host: str,
        route: str,
        params: Any,
        response_serializer: Serializer[R],
        error_serializer: Serializer[E],
        body: UploadBody,
    ):
        super().__init__(client, host, route, response_serializer, error_serializer)
        self.body = body
        self.expected_length = self._expected_length(body)

        headers = {
            "Content-Type": "application/octet-stream",
            API_ARG_HEADER: _api_arg(params),
        }
        if self.expected_length >= 0:
            headers["Content-Length"] = str(self.expected_length)
        self.headers = client.headers_for(host, headers)
        self._start()

    @staticmethod
    def _expected_length(body: UploadBody) -> int:
        match body:
            case UploadData(data=data):
                return len(data)
            case UploadFile(path=path):
                try:
                    return os.path.getsize(path)
                except OSError:
                    # surfaces as a TransportError once the upload starts
                    return -1
            case UploadStream():
                return -1
        raise TypeError(f"Unsupported upload body: {body!r}")

    async def _chunks(self) -> AsyncIterator[bytes]:
        match self.body:
            case UploadData(data=data):
                for offset in range(0, len(data), CHUNK_SIZE):
                    yield data[offset:offset + CHUNK_SIZE]
            case UploadFile(path=path):
                with open(path, "rb") as f:
                    while chunk := f.read(CHUNK_SIZE):
                        yield chunk
            case UploadStream(source=source) if isinstance(source, AsyncIterable):
                async for chunk in source:
                    yield chunk
            case UploadStream(source=source):
                for chunk in source:
                    yield chunk

    async def _content(self) -> AsyncIterator[bytes]:
        total = 0
        async for chunk in self._chunks():
            total += len(chunk)
            self._report_progress(len(chunk), total, self.expected_length)
            yield chunk

    async def _perform(self) -> CallResult[Any]:
        try:
            response = await self.client.http_client.post(
                self.url,
                content=self._content(),
                headers=self.headers,
            )
        except httpx.RequestError as e:
            return CallResult(error=self.handle_response_error(None, None, e))
        except OSError as e:
            return CallResult(error=TransportError(e))

        if not response.is_success:
            return CallResult(error=self.handle_response_error(response, response.content, None))
        return self._deserialize_body(response)


DestinationResolver = Callable[[Path, httpx.Response], Path]


class BabelDownloadRequest(BabelRequest[R, E]):
    """
    A download-style request: arguments in a header, raw bytes out, JSON
    metadata in the ``Dropbox-Api-Result`` response header.

    On success the value is ``(metadata, path)`` where ``path`` is the
    location chosen by the destination resolver.
    """

    def __init__(
        self,
        client: BabelClient,
        host: str,
        route: str,
        params: Any,
        response_serializer: Serializer[R],
        error_serializer: Serializer[E],
        destination: DestinationResolver,
    ):
        super().__init__(client, host, route, response_serializer, error_serializer)
        self.destination = destination
        self.url_path: Path | None = None
        self.headers = client.headers_for(host, {API_ARG_HEADER: _api_arg(params)})
        self._start()

    async def _perform(self) -> CallResult[Any]:
        try:
            async with self.client.http_client.stream(
                "POST",
                self.url,
                headers=self.headers,
            ) as response:
                if not response.is_success:
                    data = await response.aread()
                    return CallResult(error=self.handle_response_error(response, data, None))

                temp_path = Path(tempfile.gettempdir()) / f"dropbox-{uuid.uuid4().hex}"
                self.url_path = Path(self.destination(temp_path, response))

                try:
                    expected = int(response.headers.get("Content-Length", -1))
                except ValueError:
                    expected = -1
                total = 0
                with open(self.url_path, "wb") as f:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        f.write(chunk)
                        total += len(chunk)
                        self._report_progress(len(chunk), total, expected)
        except httpx.RequestError as e:
            return CallResult(error=self.handle_response_error(None, None, e))
        except OSError as e:
            return CallResult(error=TransportError(e))

        try:
            result = response.headers[API_RESULT_HEADER]
            metadata = self.response_serializer.deserialize(parse_json(result.encode("utf-8")))
        except (KeyError, ValueError) as e:
            return CallResult(error=self.handle_response_error(response, None, e))
        return CallResult(value=(metadata, self.url_path))
