"""Detail lookup for a single mint via the pumpapi metadata endpoint."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import requests
from cachetools import TTLCache
from tenacity import RetryError, retry, retry_if_exception, stop_after_attempt, wait_exponential

from ..config.settings import MetadataConfig, get_app_config
from ..datalake.schemas import TokenDetails
from ..monitoring.logger import get_logger

SOCIAL_EXTENSION_TYPES = ("website", "telegram", "twitter")


def _extension_url(extensions: Any, kind: str) -> Optional[str]:
    if not isinstance(extensions, Iterable) or isinstance(extensions, (str, bytes, dict)):
        return None
    for ext in extensions:
        if isinstance(ext, dict) and ext.get("type") == kind:
            url = ext.get("url")
            if isinstance(url, str) and url:
                return url
    return None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_transient(exc: BaseException) -> bool:
    """Connection drops, timeouts and 5xx answers are worth another attempt; a 404 is not."""

    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError):
        response = exc.response
        return response is not None and response.status_code >= 500
    return False


def parse_details(mint: str, payload: Dict[str, Any]) -> Optional[TokenDetails]:
    result = payload.get("result")
    if not isinstance(result, dict):
        return None
    extensions = result.get("extensions")
    links = {kind: _extension_url(extensions, kind) for kind in SOCIAL_EXTENSION_TYPES}
    return TokenDetails(
        mint=str(result.get("address") or mint),
        name=result.get("name"),
        symbol=result.get("symbol"),
        description=result.get("description"),
        image=result.get("image"),
        website=links["website"],
        telegram=links["telegram"],
        twitter=links["twitter"],
        # The endpoint reports supply, which the detail page treats as market cap.
        market_cap_sol=_optional_float(result.get("current_supply")),
        initial_buy=_optional_float(result.get("initial_buy")),
        source="remote",
    )


class TokenDetailsClient:
    """Fetches and caches detail records for mints not present in the store."""

    def __init__(
        self,
        config: Optional[MetadataConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().metadata
        self._session = session or requests.Session()
        self._cache: TTLCache[str, Optional[TokenDetails]] = TTLCache(
            maxsize=512, ttl=max(self._config.details_cache_ttl_seconds, 1)
        )
        self._logger = get_logger(__name__)

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_exception(_is_transient),
    )
    def _get(self, path: str) -> Dict[str, Any]:
        url = f"{str(self._config.details_base_url).rstrip('/')}{path}"
        response = self._session.get(
            url,
            headers={"User-Agent": self._config.user_agent},
            timeout=self._config.http_timeout,
        )
        response.raise_for_status()
        return response.json()

    def fetch(self, mint: str) -> Optional[TokenDetails]:
        if not mint:
            return None
        if mint in self._cache:
            return self._cache[mint]
        try:
            payload = self._get(f"/get_metadata/{mint}")
        except (RetryError, requests.RequestException, ValueError) as exc:
            self._logger.warning("Detail lookup failed for %s: %s", mint, exc)
            return None
        details = parse_details(mint, payload) if isinstance(payload, dict) else None
        self._cache[mint] = details
        return details


__all__ = ["TokenDetailsClient", "parse_details"]
