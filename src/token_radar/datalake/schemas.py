"""Data models shared by ingestion, scoring, the view builder and storage."""

from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ..utils.constants import DEFAULT_PAGE_SIZE, METADATA_FIELDS, utc_now

# Feed keys mapped onto TokenRecord attributes.
MARKET_FIELD_ALIASES: Dict[str, str] = {
    "marketCapSol": "market_cap_sol",
    "initialBuy": "initial_buy",
    "liquidity": "liquidity",
    "holders": "holders",
    "topHolders": "top_holders",
    "contractAge": "contract_age",
    "priceVolatility": "price_volatility",
}

_RESERVED_KEYS = {"uri", "mint", "metadata", "receivedAt", "addedAt", *MARKET_FIELD_ALIASES}


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return max(number, 0.0)


def _as_int(value: Any) -> Optional[int]:
    number = _as_float(value)
    if number is None:
        return None
    return int(number)


def _as_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class FilterField(str, Enum):
    """Metadata fields the free-text search can target."""

    NAME = "name"
    SYMBOL = "symbol"


class SortKey(str, Enum):
    """Numeric keys offered for ordering the view."""

    MARKET_CAP = "marketCapSol"
    INITIAL_BUY = "initialBuy"
    LIQUIDITY = "liquidity"
    HOLDERS = "holders"

    @property
    def attribute(self) -> str:
        return MARKET_FIELD_ALIASES[self.value]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class RiskLevel(str, Enum):
    """Coarse risk buckets derived from the total risk factor sum."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return {"Low": 0, "Medium": 1, "High": 2}[self.value]


@dataclass(slots=True)
class TokenMetadata:
    """Descriptive block resolved from a token's content URI.

    Every field is optional: the document is untrusted and frequently absent.
    """

    name: Optional[str] = None
    symbol: Optional[str] = None
    image: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    telegram: Optional[str] = None
    twitter: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenMetadata":
        if not isinstance(payload, Mapping):
            return cls()
        return cls(**{key: _as_text(payload.get(key)) for key in METADATA_FIELDS})

    def to_payload(self) -> Dict[str, Optional[str]]:
        return {key: getattr(self, key) for key in METADATA_FIELDS}

    def is_empty(self) -> bool:
        return all(getattr(self, key) is None for key in METADATA_FIELDS)

    def get(self, key: str) -> Optional[str]:
        if key not in METADATA_FIELDS:
            return None
        return getattr(self, key)


@dataclass(slots=True)
class TokenRecord:
    """One discovered token: feed fields, market fields and enrichment."""

    uri: str
    mint: Optional[str] = None
    market_cap_sol: float = 0.0
    initial_buy: float = 0.0
    liquidity: Optional[float] = None
    holders: int = 0
    top_holders: List[float] = field(default_factory=list)
    contract_age: Optional[int] = None
    price_volatility: float = 0.0
    metadata: TokenMetadata = field(default_factory=TokenMetadata)
    received_at: datetime = field(default_factory=utc_now)
    extras: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TokenRecord":
        """Build a record from a feed event or a persisted snapshot.

        Unknown keys are kept in ``extras``; numeric fields that fail to parse
        fall back to their defaults.
        """

        top_holders_raw = payload.get("topHolders")
        top_holders: List[float] = []
        if isinstance(top_holders_raw, list):
            for item in top_holders_raw:
                pct = _as_float(item)
                if pct is not None:
                    top_holders.append(min(pct, 100.0))

        return cls(
            uri=str(payload["uri"]),
            mint=_as_text(payload.get("mint")),
            market_cap_sol=_as_float(payload.get("marketCapSol")) or 0.0,
            initial_buy=_as_float(payload.get("initialBuy")) or 0.0,
            liquidity=_as_float(payload.get("liquidity")),
            holders=_as_int(payload.get("holders")) or 0,
            top_holders=top_holders,
            contract_age=_as_int(payload.get("contractAge")),
            price_volatility=_as_float(payload.get("priceVolatility")) or 0.0,
            metadata=TokenMetadata.from_payload(payload.get("metadata")),
            received_at=_parse_timestamp(payload.get("receivedAt")) or utc_now(),
            extras={key: value for key, value in payload.items() if key not in _RESERVED_KEYS},
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extras)
        payload.update(
            {
                "uri": self.uri,
                "mint": self.mint,
                "marketCapSol": self.market_cap_sol,
                "initialBuy": self.initial_buy,
                "liquidity": self.liquidity,
                "holders": self.holders,
                "topHolders": list(self.top_holders),
                "contractAge": self.contract_age,
                "priceVolatility": self.price_volatility,
                "metadata": self.metadata.to_payload(),
                "receivedAt": self.received_at.isoformat(),
            }
        )
        return payload

    def snapshot(self) -> "TokenRecord":
        return copy.deepcopy(self)


@dataclass(slots=True)
class RiskProfile:
    percentage: int
    level: RiskLevel
    factors: Dict[str, int]
    total: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "percentage": self.percentage,
            "level": self.level.value,
            "factors": dict(self.factors),
            "total": self.total,
        }


@dataclass(slots=True)
class ScoredToken:
    """A record paired with scores derived at read time."""

    record: TokenRecord
    score: int
    risk: RiskProfile

    def to_payload(self) -> Dict[str, Any]:
        payload = self.record.to_payload()
        payload["score"] = self.score
        payload["risk"] = self.risk.to_payload()
        return payload


@dataclass(slots=True)
class WatchlistEntry:
    """A favorited record, frozen at the moment it was added."""

    uri: str
    snapshot: TokenRecord
    added_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WatchlistEntry":
        record = TokenRecord.from_payload(payload)
        added_at = _parse_timestamp(payload.get("addedAt")) or record.received_at
        return cls(uri=record.uri, snapshot=record, added_at=added_at)

    def to_payload(self) -> Dict[str, Any]:
        payload = self.snapshot.to_payload()
        payload["addedAt"] = self.added_at.isoformat()
        return payload


@dataclass(frozen=True, slots=True)
class ViewQuery:
    """Parameters for one read of the token view. Pages are 1-based."""

    search: str = ""
    filter_field: FilterField = FilterField.NAME
    min_market_cap: Optional[float] = None
    max_market_cap: Optional[float] = None
    min_initial_buy: Optional[float] = None
    max_initial_buy: Optional[float] = None
    sort_key: Optional[SortKey] = None
    sort_direction: SortDirection = SortDirection.DESC
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")


@dataclass(slots=True)
class ViewSummary:
    total_market_cap: float
    count: int
    average_risk_percentage: float

    def to_payload(self) -> Dict[str, Any]:
        return {
            "totalMarketCap": self.total_market_cap,
            "count": self.count,
            "averageRiskPercentage": self.average_risk_percentage,
        }


@dataclass(slots=True)
class TokenView:
    """Filtered, sorted and paginated projection of the token store."""

    items: List[ScoredToken]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    summary: ViewSummary
    favorites: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        favorites = set(self.favorites)
        items = []
        for item in self.items:
            payload = item.to_payload()
            payload["favorite"] = item.record.uri in favorites
            items.append(payload)
        return {
            "items": items,
            "page": self.page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "summary": self.summary.to_payload(),
        }


@dataclass(slots=True)
class ConnectionStatus:
    """Feed connectivity as observed by the presentation layer."""

    connected: bool = False
    last_error: str = ""
    reconnect_attempts: int = 0
    last_message_at: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "lastError": self.last_error,
            "reconnectAttempts": self.reconnect_attempts,
            "lastMessageAt": self.last_message_at.isoformat() if self.last_message_at else None,
        }


@dataclass(slots=True)
class TokenDetails:
    """Detail-page view of a single mint."""

    mint: str
    name: Optional[str] = None
    symbol: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    website: Optional[str] = None
    telegram: Optional[str] = None
    twitter: Optional[str] = None
    market_cap_sol: Optional[float] = None
    initial_buy: Optional[float] = None
    source: str = "store"

    @classmethod
    def from_record(cls, record: TokenRecord) -> "TokenDetails":
        meta = record.metadata
        return cls(
            mint=record.mint or "",
            name=meta.name,
            symbol=meta.symbol,
            description=meta.description,
            image=meta.image,
            website=meta.website,
            telegram=meta.telegram,
            twitter=meta.twitter,
            market_cap_sol=record.market_cap_sol,
            initial_buy=record.initial_buy,
            source="store",
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "name": self.name,
            "symbol": self.symbol,
            "description": self.description,
            "image": self.image,
            "website": self.website,
            "telegram": self.telegram,
            "twitter": self.twitter,
            "marketCapSol": self.market_cap_sol,
            "initialBuy": self.initial_buy,
            "source": self.source,
        }


__all__ = [
    "ConnectionStatus",
    "FilterField",
    "MARKET_FIELD_ALIASES",
    "RiskLevel",
    "RiskProfile",
    "ScoredToken",
    "SortDirection",
    "SortKey",
    "TokenDetails",
    "TokenMetadata",
    "TokenRecord",
    "TokenView",
    "ViewQuery",
    "ViewSummary",
    "WatchlistEntry",
]
