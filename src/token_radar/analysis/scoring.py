"""Quality score and risk profile heuristics.

Both are pure functions of a record and are recomputed on every read so a
live field update can never leave a stale score behind.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from ..datalake.schemas import RiskLevel, RiskProfile, ScoredToken, TokenRecord

SOCIAL_LINK_POINTS = 3
MARKET_CAP_BONUS_THRESHOLD = 10.0
LOW_MARKET_CAP_SCORE_CAP = 7
MAX_SCORE = 10

LIQUIDITY_FLOOR = 50.0
HOLDER_CONCENTRATION_LIMIT_PCT = 60.0
VOLATILITY_LIMIT_PCT = 15.0
MIN_CONTRACT_AGE_DAYS = 3

RISK_PERCENT_FLOOR = 10
RISK_PERCENT_CEILING = 95


def quality_score(record: TokenRecord) -> int:
    """Score 0..10 from social links, capped at 7 for sub-10 SOL market caps."""

    meta = record.metadata
    total = 0
    for link in (meta.website, meta.telegram, meta.twitter):
        if link:
            total += SOCIAL_LINK_POINTS
    if record.market_cap_sol >= MARKET_CAP_BONUS_THRESHOLD:
        total += 1
    else:
        total = min(total, LOW_MARKET_CAP_SCORE_CAP)
    return max(0, min(total, MAX_SCORE))


def risk_factors(record: TokenRecord) -> Dict[str, int]:
    meta = record.metadata
    liquidity = record.liquidity
    top3 = sum(record.top_holders[:3])
    return {
        "liquidity": 3 if liquidity is None or liquidity < LIQUIDITY_FLOOR else 1,
        "holderConcentration": 2 if top3 > HOLDER_CONCENTRATION_LIMIT_PCT else 0,
        "volatility": 2 if record.price_volatility > VOLATILITY_LIMIT_PCT else 0,
        "contractAge": 1
        if record.contract_age is None or record.contract_age < MIN_CONTRACT_AGE_DAYS
        else 0,
        "social": 1 if not meta.telegram or not meta.twitter else 0,
    }


def risk_level(total_risk: int) -> RiskLevel:
    if total_risk > 5:
        return RiskLevel.HIGH
    if total_risk > 3:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def risk_profile(record: TokenRecord) -> RiskProfile:
    factors = risk_factors(record)
    total = sum(factors.values())
    percentage = max(RISK_PERCENT_FLOOR, min(total * 10, RISK_PERCENT_CEILING))
    return RiskProfile(percentage=percentage, level=risk_level(total), factors=factors, total=total)


def score_record(record: TokenRecord) -> ScoredToken:
    return ScoredToken(record=record, score=quality_score(record), risk=risk_profile(record))


def score_records(records: Iterable[TokenRecord]) -> List[ScoredToken]:
    return [score_record(record) for record in records]


__all__ = [
    "quality_score",
    "risk_factors",
    "risk_level",
    "risk_profile",
    "score_record",
    "score_records",
]
