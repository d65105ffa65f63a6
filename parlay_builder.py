"""
parlay_builder.py - Sweet Spot Selection & Position Sizing

Turns ranked sweet spots into something bettable:
- Filters by prop type and quality band, alternate sort orders
- Parlay legs built from individual spots
- Combined parlay odds and naive (independent) hit probability
- Fractional Kelly (0.25) position sizing
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import pandas as pd

from sweet_spot_engine import (
    PROP_TYPE_CONFIG, PickSide, PropType, QualityTier, SweetSpot, TIER_ORDER
)

logger = logging.getLogger(__name__)


# =============================================================================
# FILTERS
# =============================================================================

class QualityFilter(Enum):
    ALL = "all"
    ELITE = "ELITE"
    PREMIUM_PLUS = "PREMIUM+"
    STRONG_PLUS = "STRONG+"


# Worst tier admitted by each band
_QUALITY_FLOOR = {
    QualityFilter.ALL: QualityTier.AVOID,
    QualityFilter.ELITE: QualityTier.ELITE,
    QualityFilter.PREMIUM_PLUS: QualityTier.PREMIUM,
    QualityFilter.STRONG_PLUS: QualityTier.STRONG,
}

SORT_KEYS = {
    "score": lambda s: s.sweet_spot_score,
    "floor": lambda s: s.floor_protection,
    "edge": lambda s: s.edge,
    "juice": lambda s: s.juice.price,
}


def filter_spots(
    spots: List[SweetSpot],
    prop_type: Optional[PropType] = None,
    quality: QualityFilter = QualityFilter.ALL
) -> List[SweetSpot]:
    """Keep ranking order; narrow by prop type and quality band"""
    worst = TIER_ORDER[_QUALITY_FLOOR[quality]]
    return [
        s for s in spots
        if (prop_type is None or s.prop_type == prop_type)
        and TIER_ORDER[s.quality_tier] <= worst
    ]


def sweet_spots_only(spots: List[SweetSpot]) -> List[SweetSpot]:
    """STRONG tier or better"""
    return filter_spots(spots, quality=QualityFilter.STRONG_PLUS)


def sort_spots(spots: List[SweetSpot], sort_by: str = "score") -> List[SweetSpot]:
    if sort_by not in SORT_KEYS:
        raise ValueError(f"Unknown sort '{sort_by}', expected one of {sorted(SORT_KEYS)}")
    return sorted(spots, key=SORT_KEYS[sort_by], reverse=True)


def spots_to_dataframe(spots: List[SweetSpot]) -> pd.DataFrame:
    """Flat table of the headline numbers, one row per spot"""
    rows = [{
        "player": s.player_name,
        "team": s.team_name,
        "opponent": s.opponent_name,
        "prop": s.prop_type.value,
        "side": s.side.value,
        "line": s.line,
        "price": s.juice.price,
        "tier": s.quality_tier.value,
        "score": s.sweet_spot_score,
        "floor": round(s.floor_protection, 3),
        "edge": round(s.edge, 2),
        "l10_hit_rate": s.hit_rate_l10,
        "l10_min": s.l10_stats.min,
        "l10_max": s.l10_stats.max,
        "l10_avg": round(s.l10_stats.avg, 2),
        "l10_median": s.l10_stats.median,
        "momentum": s.momentum.value,
        "minutes_verdict": s.production.verdict.value,
        "h2h_boost": s.h2h_boost,
        "usage_boost": s.usage_boost,
    } for s in spots]
    return pd.DataFrame(rows)


# =============================================================================
# KELLY CRITERION
# =============================================================================

class KellyCriterion:
    """
    Fractional Kelly Criterion for position sizing.

    Full Kelly: f* = (bp - q) / b
    We use 0.25 Kelly to reduce variance.
    """

    KELLY_FRACTION = 0.25
    MAX_SINGLE_BET = 0.05  # 5% of bankroll max
    MAX_PARLAY_BET = 0.02  # 2% of bankroll max

    @classmethod
    def american_to_decimal(cls, odds: int) -> float:
        """Convert American odds to decimal"""
        if odds == 0:
            raise ValueError("American odds of 0 are not a price")
        if odds > 0:
            return 1 + (odds / 100)
        else:
            return 1 + (100 / abs(odds))

    @classmethod
    def decimal_to_american(cls, decimal_odds: float) -> int:
        if decimal_odds >= 2.0:
            return int(round((decimal_odds - 1) * 100))
        return int(round(-100 / (decimal_odds - 1)))

    @classmethod
    def calculate_kelly_fraction(cls, win_probability: float, american_odds: int) -> float:
        """Calculate optimal bet size using Fractional Kelly"""
        decimal_odds = cls.american_to_decimal(american_odds)
        b = decimal_odds - 1  # Net payout per dollar
        p = win_probability
        q = 1 - p

        full_kelly = (b * p - q) / b
        return max(0, full_kelly * cls.KELLY_FRACTION)

    @classmethod
    def calculate_units(cls, win_probability: float, american_odds: int, is_parlay: bool = False) -> float:
        """Calculate recommended units (1 unit = 1% of bankroll)"""
        units = cls.calculate_kelly_fraction(win_probability, american_odds) * 100

        max_units = (cls.MAX_PARLAY_BET if is_parlay else cls.MAX_SINGLE_BET) * 100
        return round(min(units, max_units), 2)

    @classmethod
    def calculate_ev(cls, win_probability: float, american_odds: int) -> float:
        """Calculate expected value per unit"""
        payout = cls.american_to_decimal(american_odds) - 1
        ev = (win_probability * payout) - ((1 - win_probability) * 1)
        return round(ev, 4)


# =============================================================================
# PARLAY BUILDER
# =============================================================================

@dataclass
class ParlayLeg:
    description: str
    player_name: str
    prop_label: str
    line: float
    side: PickSide
    odds: int
    hit_rate: float
    quality_tier: QualityTier

    @classmethod
    def from_spot(cls, spot: SweetSpot) -> "ParlayLeg":
        config = PROP_TYPE_CONFIG[spot.prop_type]
        odds = spot.over_price if spot.side == PickSide.OVER else spot.under_price
        return cls(
            description=f"{spot.player_name} {spot.side.value.upper()} {spot.line:g} {config.short_label}",
            player_name=spot.player_name,
            prop_label=config.label,
            line=spot.line,
            side=spot.side,
            odds=odds,
            hit_rate=spot.hit_rate_l10,
            quality_tier=spot.quality_tier,
        )


@dataclass
class ParlaySlip:
    legs: List[ParlayLeg] = field(default_factory=list)

    # Leg hit rates are clamped so a 10/10 leg never reads as a lock
    MIN_LEG_PROB = 0.01
    MAX_LEG_PROB = 0.99

    def add_leg(self, spot: SweetSpot) -> bool:
        """Add a spot; refuses a second leg on the same player+prop"""
        leg = ParlayLeg.from_spot(spot)
        if leg.odds is None or abs(leg.odds) < 100:
            logger.warning(f"Skipping leg with unusable price {leg.odds}: {leg.description}")
            return False
        for existing in self.legs:
            if existing.player_name.lower() == leg.player_name.lower() and existing.prop_label == leg.prop_label:
                logger.debug(f"Leg already on slip: {existing.description}")
                return False
        self.legs.append(leg)
        return True

    @property
    def combined_decimal_odds(self) -> float:
        decimal = 1.0
        for leg in self.legs:
            decimal *= KellyCriterion.american_to_decimal(leg.odds)
        return decimal

    @property
    def combined_american_odds(self) -> int:
        if not self.legs:
            return 0
        return KellyCriterion.decimal_to_american(self.combined_decimal_odds)

    @property
    def naive_probability(self) -> float:
        """Parlay probability assuming independent legs"""
        if not self.legs:
            return 0.0
        prob = 1.0
        for leg in self.legs:
            prob *= min(max(leg.hit_rate, self.MIN_LEG_PROB), self.MAX_LEG_PROB)
        return prob

    @property
    def expected_value(self) -> float:
        if not self.legs:
            return 0.0
        return KellyCriterion.calculate_ev(self.naive_probability, self.combined_american_odds)

    @property
    def recommended_units(self) -> float:
        if not self.legs:
            return 0.0
        is_parlay = len(self.legs) > 1
        return KellyCriterion.calculate_units(self.naive_probability, self.combined_american_odds, is_parlay)


def build_parlay(spots: List[SweetSpot], max_legs: int = 3) -> ParlaySlip:
    """Greedy slip from the top of a ranked list, one leg per player"""
    slip = ParlaySlip()
    players = set()
    for spot in spots:
        if len(slip.legs) >= max_legs:
            break
        if spot.player_name.lower() in players:
            continue
        if slip.add_leg(spot):
            players.add(spot.player_name.lower())
    return slip
