"""Filtered, sorted and paginated projection of the token store."""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from ..datalake.schemas import (
    ScoredToken,
    SortDirection,
    TokenRecord,
    TokenView,
    ViewQuery,
    ViewSummary,
)
from .scoring import score_record


def _matches_search(record: TokenRecord, query: ViewQuery) -> bool:
    term = query.search.lower()
    if not term:
        return True
    value = record.metadata.get(query.filter_field.value)
    if not value:
        return False
    return term in value.lower()


def _within(value: float, lower: Optional[float], upper: Optional[float]) -> bool:
    if lower is not None and value < lower:
        return False
    if upper is not None and value > upper:
        return False
    return True


def filter_records(records: Iterable[TokenRecord], query: ViewQuery) -> List[TokenRecord]:
    return [
        record
        for record in records
        if _matches_search(record, query)
        and _within(record.market_cap_sol, query.min_market_cap, query.max_market_cap)
        and _within(record.initial_buy, query.min_initial_buy, query.max_initial_buy)
    ]


def sort_records(records: Sequence[TokenRecord], query: ViewQuery) -> List[TokenRecord]:
    if query.sort_key is None:
        return list(records)
    attribute = query.sort_key.attribute

    def _key(record: TokenRecord) -> float:
        return float(getattr(record, attribute) or 0.0)

    if query.sort_direction == SortDirection.DESC:
        # Negating the key keeps sorted() stable on ties in both directions.
        return sorted(records, key=lambda record: -_key(record))
    return sorted(records, key=_key)


def summarize(scored: Sequence[ScoredToken]) -> ViewSummary:
    count = len(scored)
    total_market_cap = sum(item.record.market_cap_sol for item in scored)
    average_risk = sum(item.risk.percentage for item in scored) / count if count else 0.0
    return ViewSummary(
        total_market_cap=total_market_cap,
        count=count,
        average_risk_percentage=average_risk,
    )


def build_view(
    records: Iterable[TokenRecord],
    query: ViewQuery,
    watchlist_uris: Iterable[str] = (),
) -> TokenView:
    """Apply search, range filters, ordering and pagination in that order.

    The summary covers the whole filtered set, not just the returned page.
    """

    filtered = sort_records(filter_records(records, query), query)
    scored = [score_record(record) for record in filtered]
    total = len(scored)
    total_pages = math.ceil(total / query.page_size) if total else 0
    start = (query.page - 1) * query.page_size
    page_items = scored[start : start + query.page_size]
    favorites = set(watchlist_uris)
    return TokenView(
        items=page_items,
        page=query.page,
        page_size=query.page_size,
        total_items=total,
        total_pages=total_pages,
        summary=summarize(scored),
        favorites=[item.record.uri for item in page_items if item.record.uri in favorites],
    )


__all__ = ["build_view", "filter_records", "sort_records", "summarize"]
