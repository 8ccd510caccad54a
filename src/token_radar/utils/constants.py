"""Shared constants for the token radar pipeline."""

from datetime import datetime, timezone

# Utility function to get timezone-aware UTC datetime
def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)

# Flush cadences offered to the user, in seconds.
UPDATE_INTERVAL_PRESETS: frozenset[int] = frozenset({1, 5, 10, 20})

PRICE_WINDOW_SIZE = 24
DEFAULT_PAGE_SIZE = 12
WATCHLIST_KEY = "favorites"

METADATA_FIELDS: tuple[str, ...] = (
    "name",
    "symbol",
    "image",
    "description",
    "website",
    "telegram",
    "twitter",
)

__all__ = [
    "utc_now",
    "UPDATE_INTERVAL_PRESETS",
    "PRICE_WINDOW_SIZE",
    "DEFAULT_PAGE_SIZE",
    "WATCHLIST_KEY",
    "METADATA_FIELDS",
]
