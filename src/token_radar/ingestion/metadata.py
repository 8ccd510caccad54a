"""Resolves a token's content URI into its descriptive metadata block."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping, Optional

import requests

from ..config.settings import MetadataConfig, get_app_config
from ..datalake.schemas import TokenMetadata, TokenRecord
from ..monitoring.logger import correlation_scope, get_logger
from ..monitoring.metrics import METRICS, MetricsRegistry
from .market_fields import MarketFieldSimulator

IPFS_SCHEME = "ipfs://"


class EnrichmentError(RuntimeError):
    """Raised when a metadata document cannot be fetched or decoded."""


class MetadataEnricher:
    """Turns a raw feed event into a :class:`TokenRecord`.

    A failed fetch never drops the record: it is returned with empty metadata.
    Fetches are not retried.
    """

    def __init__(
        self,
        config: Optional[MetadataConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        market_fields: Optional[MarketFieldSimulator] = None,
        metrics: MetricsRegistry = METRICS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._config = config or get_app_config().metadata
        self._session = session or requests.Session()
        self._market_fields = market_fields
        self._metrics = metrics
        self._logger = logger or get_logger(__name__)

    def resolve_url(self, uri: str) -> str:
        if uri.startswith(IPFS_SCHEME):
            gateway = str(self._config.ipfs_gateway).rstrip("/")
            return f"{gateway}/{uri[len(IPFS_SCHEME):]}"
        return uri

    def fetch_metadata(self, uri: str) -> TokenMetadata:
        """Blocking GET of the metadata document; raises :class:`EnrichmentError`."""

        url = self.resolve_url(uri)
        headers = {"User-Agent": self._config.user_agent, "Accept": "application/json"}
        try:
            response = self._session.get(url, headers=headers, timeout=self._config.http_timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise EnrichmentError(f"fetch failed for {url}: {exc}") from exc
        except ValueError as exc:
            raise EnrichmentError(f"invalid JSON at {url}: {exc}") from exc
        if not isinstance(payload, dict):
            raise EnrichmentError(f"metadata at {url} is not a JSON object")
        return TokenMetadata.from_payload(payload)

    def build_record(self, event: Mapping[str, Any], metadata: Optional[TokenMetadata] = None) -> TokenRecord:
        payload: Dict[str, Any] = dict(event)
        if self._market_fields is not None:
            payload = self._market_fields.fill_missing(payload)
        # Feed-supplied metadata is never trusted over the fetched document.
        payload.pop("metadata", None)
        record = TokenRecord.from_payload(payload)
        record.metadata = metadata or TokenMetadata()
        return record

    async def enrich(self, event: Mapping[str, Any]) -> TokenRecord:
        uri = str(event["uri"])
        with correlation_scope(uri):
            try:
                with self._metrics.timed("enrichment.latency_seconds"):
                    metadata = await asyncio.to_thread(self.fetch_metadata, uri)
            except EnrichmentError as exc:
                self._metrics.increment("enrichment.failures")
                self._logger.warning("Metadata unavailable, keeping bare record: %s", exc)
                metadata = TokenMetadata()
            else:
                self._metrics.increment("enrichment.success")
            return self.build_record(event, metadata)


__all__ = ["EnrichmentError", "MetadataEnricher"]
