"""Stream relay — pipe one upstream body to one client, and stop promptly.

``RelaySession`` is the per-download state machine::

    FETCHING ──open()+prime()──▶ STREAMING ──▶ COMPLETED   upstream body ended
                                           ├─▶ ABORTED     client went away
                                           └─▶ FAILED      upstream read error

  - open():       streamed GET; transport error or non-2xx → FAILED +
                  UpstreamFetchFailed (HTTP 502).
  - prime():      pulls the first body chunk BEFORE the response is committed,
                  so an immediate upstream failure can still become a 502 JSON
                  error instead of an empty 200. From here on the session is
                  counted as active.
  - iter_bytes(): yields chunks in upstream order, one at a time. Memory use is
                  bounded by a single chunk, independent of resource size.
  - close():      idempotent; closes the upstream response. Any non-terminal
                  state becomes ABORTED.

``RelayResponse`` binds an opened session to an ASGI connection. It primes the
session and streams the body while listening for ``http.disconnect`` in the
same task group, and cancels the relay the moment the client leaves, even
while an upstream read is pending (the first one included). This does not
depend on the ASGI spec version the server advertises. A session that fails
to prime is answered with a 502 JSON error, since no headers have been sent
yet. The session is closed in a shielded ``finally`` so the upstream
connection is always released.

Mid-stream upstream failure after headers were sent cannot be reported as
JSON. ``RelayInterrupted`` is re-raised so the server aborts the connection
rather than ending the body cleanly; clients must treat a short download as
a failure.
"""

from __future__ import annotations

import re
import time
from enum import Enum
from typing import TYPE_CHECKING, AsyncIterator, Mapping, Optional

import anyio
import httpx
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from vidproxy.errors import RelayInterrupted, UpstreamFetchFailed
from vidproxy.models.resource import ValidatedURL
from vidproxy.models.responses import build_error_response
from vidproxy.utils.logger import get_logger

if TYPE_CHECKING:
    from vidproxy.utils.health import RelayMetricsTracker

logger = get_logger(__name__)

_DIGITS = re.compile(r"[0-9]+")


class RelayState(str, Enum):
    FETCHING = "FETCHING"
    STREAMING = "STREAMING"
    COMPLETED = "COMPLETED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


_TERMINAL_STATES = frozenset({RelayState.COMPLETED, RelayState.ABORTED, RelayState.FAILED})

_CLOSE_EVENTS = {
    RelayState.COMPLETED: "relay_complete",
    RelayState.ABORTED: "relay_aborted",
}


class RelaySession:
    """One upstream byte stream bound to one client connection.

    Args:
        client:          Shared ``httpx.AsyncClient`` (injected).
        url:             Validated upstream URL.
        request_headers: Extra headers for the upstream GET.
        metrics:         Optional tracker notified on start and termination.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: ValidatedURL,
        request_headers: Optional[Mapping[str, str]] = None,
        metrics: Optional["RelayMetricsTracker"] = None,
    ) -> None:
        self.url = url
        self.state: RelayState = RelayState.FETCHING
        self.bytes_relayed: int = 0
        self._client = client
        self._request_headers = dict(request_headers or {})
        self._metrics = metrics
        self._response: Optional[httpx.Response] = None
        self._chunks: Optional[AsyncIterator[bytes]] = None
        self._first_chunk: bytes = b""
        self._started = False
        self._closed = False
        self._opened_at = time.perf_counter()

    # ── Upstream response accessors ───────────────────────────────────────────

    @property
    def response_headers(self) -> httpx.Headers:
        if self._response is None:
            raise RuntimeError("RelaySession.open() has not completed")
        return self._response.headers

    @property
    def declared_length(self) -> Optional[str]:
        """Upstream Content-Length, if it also describes the bytes we relay.

        None when upstream sent no (or a non-numeric) length, or applied a
        content-encoding: httpx decodes the body, so the encoded length would
        not match what the client receives.
        """
        headers = self.response_headers
        value = (headers.get("content-length") or "").strip()
        encoding = (headers.get("content-encoding") or "identity").strip().lower()
        if not _DIGITS.fullmatch(value) or encoding != "identity":
            return None
        return value

    # ── FETCHING ──────────────────────────────────────────────────────────────

    async def open(self) -> httpx.Headers:
        """Send the full upstream GET and return its headers.

        Raises:
            UpstreamFetchFailed: transport error or non-2xx upstream status.
        """
        request = self._client.build_request("GET", self.url.value, headers=self._request_headers)
        try:
            self._response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_fetch_error",
                url=self.url.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self.state = RelayState.FAILED
            await self.close()
            raise UpstreamFetchFailed() from exc

        if not self._response.is_success:
            logger.warning(
                "upstream_fetch_rejected",
                url=self.url.value,
                status_code=self._response.status_code,
            )
            self.state = RelayState.FAILED
            await self.close()
            raise UpstreamFetchFailed()

        return self._response.headers

    async def prime(self) -> None:
        """Read the first body chunk and enter STREAMING.

        Raises:
            UpstreamFetchFailed: the body could not be read at all.
        """
        if self._response is None:
            raise RuntimeError("RelaySession.open() has not completed")

        self._started = True
        if self._metrics is not None:
            self._metrics.relay_started()

        chunks = self._response.aiter_bytes()
        try:
            self._first_chunk = await chunks.__anext__()
            self._chunks = chunks
        except StopAsyncIteration:
            self._chunks = None  # empty body
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream_body_unreadable",
                url=self.url.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            self.state = RelayState.FAILED
            await self.close()
            raise UpstreamFetchFailed() from exc

        self.state = RelayState.STREAMING

    # ── STREAMING ─────────────────────────────────────────────────────────────

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the upstream body, in order, one chunk at a time.

        Raises:
            RelayInterrupted: upstream read failed mid-stream (state FAILED).
        """
        if self.state is not RelayState.STREAMING:
            raise RuntimeError(f"cannot stream from a session in state {self.state.value}")

        if self._first_chunk:
            chunk, self._first_chunk = self._first_chunk, b""
            self.bytes_relayed += len(chunk)
            yield chunk

        if self._chunks is not None:
            try:
                async for chunk in self._chunks:
                    self.bytes_relayed += len(chunk)
                    yield chunk
            except httpx.HTTPError as exc:
                self.state = RelayState.FAILED
                logger.warning(
                    "relay_failed",
                    url=self.url.value,
                    bytes_relayed=self.bytes_relayed,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                raise RelayInterrupted(type(exc).__name__) from exc

        self.state = RelayState.COMPLETED

    # ── Termination ───────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Release the upstream connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self.state not in _TERMINAL_STATES:
            self.state = RelayState.ABORTED

        if self._response is not None:
            try:
                await self._response.aclose()
            except httpx.HTTPError as exc:
                logger.debug("upstream_close_error", error_type=type(exc).__name__)

        if self._started:
            if self._metrics is not None:
                self._metrics.relay_finished(self.state.value, self.bytes_relayed)
            event = _CLOSE_EVENTS.get(self.state, "relay_closed")
            logger.info(
                event,
                url=self.url.value,
                state=self.state.value,
                bytes_relayed=self.bytes_relayed,
                duration_ms=round((time.perf_counter() - self._opened_at) * 1000, 1),
            )

    @property
    def closed(self) -> bool:
        return self._closed


class RelayResponse(StreamingResponse):
    """StreamingResponse that primes its RelaySession and tears it down on
    client disconnect.

    Registration (in the /download route)::

        return RelayResponse(session, headers=build_download_headers(...), request_id=...)
    """

    def __init__(
        self,
        session: RelaySession,
        headers: Optional[Mapping[str, str]] = None,
        background: Optional[BackgroundTask] = None,
        request_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            session.iter_bytes(),
            status_code=200,
            headers=headers,
            background=background,
        )
        self.session = session
        self.request_id = request_id

    async def _relay(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await self.session.prime()
        except UpstreamFetchFailed as exc:
            logger.info(
                "download_failed",
                code=exc.code,
                status_code=exc.status_code,
                error=exc.message,
            )
            error_response = build_error_response(exc, request_id=self.request_id)
            await error_response(scope, receive, send)
            return
        await self.stream_response(send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        interrupted: Optional[RelayInterrupted] = None
        try:
            async with anyio.create_task_group() as task_group:

                async def relay_then_cancel() -> None:
                    nonlocal interrupted
                    try:
                        await self._relay(scope, receive, send)
                    except OSError:
                        # Write to a closed client socket.
                        logger.debug("client_write_failed", url=self.session.url.value)
                    except RelayInterrupted as exc:
                        interrupted = exc
                    task_group.cancel_scope.cancel()

                task_group.start_soon(relay_then_cancel)
                await self.listen_for_disconnect(receive)
                task_group.cancel_scope.cancel()
        finally:
            with anyio.CancelScope(shield=True):
                await self.body_iterator.aclose()  # type: ignore[attr-defined]
                await self.session.close()

        if interrupted is not None:
            raise interrupted

        if self.background is not None:
            await self.background()
