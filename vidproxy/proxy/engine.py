"""Probe-then-stream proxy engine.

``ProxyEngine`` composes the per-request pipeline. It is built once at lifespan
startup from the immutable ``Config`` and the shared ``httpx.AsyncClient``,
stored in ``app.state.engine`` and holds no per-request state:

  probe(raw_url):
      validate_url → MetadataProber (HEAD, GET fallback) → admit_probe

  open_download(raw_url):
      validate_url → RelaySession.open() (full GET) → metadata from the GET's
      headers → admit_download

The admitted session is primed by ``RelayResponse`` once the response is being
sent, so a client that leaves before the first upstream byte still cancels the
read.

Admission rejections close the already-open upstream response before raising,
so a refused download never leaves a connection checked out of the pool.

The upstream client is injected; tests pass an ``httpx.AsyncClient`` over an
``httpx.MockTransport`` to simulate slow, failing or disconnecting origins.
"""

from __future__ import annotations

import time
from typing import Optional

import httpx

from vidproxy.config import Config
from vidproxy.constants import POOL_KEEPALIVE_EXPIRY, POOL_MAX_KEEPALIVE
from vidproxy.errors import ProxyError, TooLarge, UnsupportedType
from vidproxy.models.resource import AdmissionDecision, ResourceMetadata
from vidproxy.proxy.admission import REASON_TOO_LARGE, AdmissionPolicy
from vidproxy.proxy.headers import build_upstream_headers
from vidproxy.proxy.prober import MetadataProber, build_metadata
from vidproxy.proxy.relay import RelaySession
from vidproxy.proxy.validator import validate_url
from vidproxy.utils.health import RelayMetricsTracker
from vidproxy.utils.logger import get_logger

logger = get_logger(__name__)

# ─── httpx.AsyncClient factory ────────────────────────────────────────────────


def create_http_client(config: Config) -> httpx.AsyncClient:
    """Create the shared httpx.AsyncClient with pooling and timeouts configured.

    Created once at lifespan startup and stored in ``app.state.http_client``;
    never instantiated per request. The read timeout bounds how long a relay
    may wait for the next upstream byte.
    """
    upstream = config.upstream
    return httpx.AsyncClient(
        limits=httpx.Limits(
            max_connections=upstream.max_connections,
            max_keepalive_connections=min(POOL_MAX_KEEPALIVE, upstream.max_connections),
            keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
        ),
        timeout=httpx.Timeout(
            upstream.read_timeout_s,
            connect=upstream.connect_timeout_s,
        ),
        follow_redirects=upstream.follow_redirects,
        max_redirects=upstream.max_redirects,
    )


# ─── Engine ───────────────────────────────────────────────────────────────────


class ProxyEngine:
    """Per-request probe and download orchestration.

    Args:
        config:      Immutable startup configuration.
        http_client: Shared upstream client.
        metrics:     Relay metrics tracker (a private one is created if omitted).
    """

    def __init__(
        self,
        config: Config,
        http_client: httpx.AsyncClient,
        metrics: Optional[RelayMetricsTracker] = None,
    ) -> None:
        self.config = config
        self.policy = AdmissionPolicy.from_config(config.policy)
        self.metrics = metrics if metrics is not None else RelayMetricsTracker()
        self._client = http_client
        self._allowed_schemes = frozenset(config.policy.allowed_schemes)
        self._upstream_headers = build_upstream_headers(config.upstream.user_agent)
        self._prober = MetadataProber(
            http_client,
            media_type_prefix=config.policy.media_type_prefix,
            request_headers=self._upstream_headers,
        )

    async def probe(self, raw_url: Optional[str]) -> tuple[ResourceMetadata, AdmissionDecision]:
        """Probe a raw URL and return its metadata with the advisory decision.

        Raises:
            InvalidInput, DisallowedScheme: validation failed (no network access).
            UpstreamUnreachable: HEAD and GET both failed to connect.
        """
        url = validate_url(raw_url, self._allowed_schemes)
        started = time.perf_counter()
        metadata = await self._prober.probe(url)
        decision = self.policy.admit_probe(metadata)
        logger.info(
            "probe_complete",
            url=url.value,
            content_type=metadata.content_type,
            content_length=metadata.content_length,
            allowed=decision.allowed,
            reason=decision.reason,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return metadata, decision

    async def open_download(self, raw_url: Optional[str]) -> tuple[RelaySession, ResourceMetadata]:
        """Validate, fetch and admit a download.

        On success the returned session is still FETCHING and owns an open
        upstream response; the caller must hand it to a ``RelayResponse`` (or
        ``close()`` it).

        Raises:
            InvalidInput, DisallowedScheme: validation failed (no network access).
            UpstreamFetchFailed: upstream unreachable or non-2xx.
            TooLarge, UnsupportedType: admission refused (upstream closed first).
        """
        url = validate_url(raw_url, self._allowed_schemes)
        session = RelaySession(
            self._client,
            url,
            request_headers=self._upstream_headers,
            metrics=self.metrics,
        )
        headers = await session.open()

        # Missing upstream type is treated as the generic binary type.
        metadata = build_metadata(
            url,
            headers,
            media_type_prefix=self.policy.media_type_prefix,
            default_content_type=self.policy.generic_binary_type,
        )
        decision = self.policy.admit_download(metadata)
        if not decision.allowed:
            await session.close()
            error = self._rejection_error(decision)
            logger.info(
                "download_rejected",
                url=url.value,
                reason=decision.reason,
                content_type=metadata.content_type,
                content_length=metadata.content_length,
            )
            raise error

        logger.info(
            "download_admitted",
            url=url.value,
            content_type=metadata.content_type,
            content_length=session.declared_length,
            filename=metadata.filename,
        )
        return session, metadata

    def _rejection_error(self, decision: AdmissionDecision) -> ProxyError:
        if decision.reason == REASON_TOO_LARGE:
            return TooLarge(f"File too large (over {self.policy.ceiling_label}).")
        return UnsupportedType()

