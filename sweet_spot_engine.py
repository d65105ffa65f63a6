"""
sweet_spot_engine.py - The Prop Edge Scoring Engine

Scores each live prop line against the player's recent game log:
- L10 / L5 trailing windows (floor, ceiling, hit count)
- Momentum (L5 vs L10)
- Production rate and minutes feasibility
- Juice / price value
- Head-to-head history vs tonight's opponent
- Usage rate

Factors are fused into a 0-100 sweet spot score and a quality tier, then
duplicate lines per player+prop are collapsed to the best one and ranked.
"""

import math
import re
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from data_pipeline import GameLog, MatchupRecord, PropCandidate, ScoringInputs

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS AND CONSTANTS
# =============================================================================

class PropType(Enum):
    """Supported prop markets"""
    POINTS = "points"
    ASSISTS = "assists"
    THREES = "threes"
    BLOCKS = "blocks"


class PickSide(Enum):
    OVER = "over"
    UNDER = "under"


class QualityTier(Enum):
    ELITE = "ELITE"
    PREMIUM = "PREMIUM"
    STRONG = "STRONG"
    STANDARD = "STANDARD"
    AVOID = "AVOID"


class MomentumTier(Enum):
    HOT = "HOT"
    NORMAL = "NORMAL"
    COLD = "COLD"


class MinutesVerdict(Enum):
    CAN_MEET = "CAN_MEET"
    RISKY = "RISKY"
    UNLIKELY = "UNLIKELY"


@dataclass(frozen=True)
class PropTypeConfig:
    label: str
    short_label: str
    game_log_field: str


PROP_TYPE_CONFIG = {
    PropType.POINTS: PropTypeConfig("Points", "PTS", "points"),
    PropType.ASSISTS: PropTypeConfig("Assists", "AST", "assists"),
    PropType.THREES: PropTypeConfig("3-Pointers Made", "3PM", "threes_made"),
    PropType.BLOCKS: PropTypeConfig("Blocks", "BLK", "blocks"),
}

TIER_ORDER = {
    QualityTier.ELITE: 0,
    QualityTier.PREMIUM: 1,
    QualityTier.STRONG: 2,
    QualityTier.STANDARD: 3,
    QualityTier.AVOID: 4,
}


@dataclass(frozen=True)
class QualityThresholds:
    """Floor / hit-rate cutoffs for the tier ladder"""
    elite_min_floor: float = 1.0      # L10 min >= line
    elite_min_hit_rate: float = 1.0   # 10/10
    premium_min_floor: float = 1.0
    premium_min_hit_rate: float = 0.9
    strong_min_hit_rate: float = 0.8
    standard_min_hit_rate: float = 0.7


@dataclass(frozen=True)
class JuiceThresholds:
    """American price bands, best to worst"""
    value: int = -105    # at or above = value play
    light: int = -115    # neutral
    medium: int = -130   # below = trap


class ScoreWeights:
    """Composite sweet spot score weights (sum to 1.0)"""
    FLOOR = 0.25
    EDGE = 0.20
    HIT_RATE = 0.25
    USAGE = 0.10
    JUICE = 0.10
    H2H = 0.10

    FLOOR_CAP = 1.5       # floor protection beyond 1.5x adds nothing
    EDGE_SCALE = 10.0     # +/-10 stat units maps to the ends of the edge range

    # Native ranges of the boosts, used to rescale into [0, 1]
    USAGE_OFFSET, USAGE_SPAN = 0.10, 0.20
    JUICE_OFFSET, JUICE_SPAN = 0.15, 0.30
    H2H_OFFSET, H2H_SPAN = 0.15, 0.30


@dataclass
class EngineConfig:
    min_games: int = 5
    max_logs_per_player: int = 15
    long_window: int = 10
    short_window: int = 5
    discard_avoid_below: float = 0.5
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    juice: JuiceThresholds = field(default_factory=JuiceThresholds)


# =============================================================================
# RESULT DATA CLASSES
# =============================================================================

@dataclass
class L10Stats:
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    median: float = 0.0
    hit_count: int = 0
    games_played: int = 0

    @property
    def hit_rate(self) -> float:
        return self.hit_count / self.games_played if self.games_played > 0 else 0.0


@dataclass
class L5Stats:
    avg: float = 0.0
    games_played: int = 0


@dataclass
class ProductionMetrics:
    stat_per_minute: float
    avg_minutes: float
    minutes_needed: float  # inf when the line is unreachable at this rate
    verdict: MinutesVerdict


@dataclass
class JuiceAnalysis:
    side: PickSide
    price: int
    value_boost: float
    is_value_play: bool
    is_trap: bool


@dataclass
class H2HData:
    opponent_name: str
    avg_stat: float
    min_stat: float
    max_stat: float
    games_played: int
    hit_rate: float


@dataclass(frozen=True)
class ScoreFactors:
    """Inputs to the composite score, all oriented to the chosen side"""
    floor_protection: float
    edge: float
    hit_rate_l10: float
    usage_boost: float = 0.0
    juice_boost: float = 0.0
    h2h_boost: float = 0.0


@dataclass
class SweetSpot:
    """Scored recommendation for one (deduplicated) prop"""
    id: str
    player_name: str
    team_name: str
    opponent_name: str
    prop_type: PropType
    side: PickSide
    line: float
    over_price: int
    under_price: int
    game_description: str
    game_time: str

    l10_stats: L10Stats
    l5_stats: L5Stats
    floor_protection: float
    edge: float
    hit_rate_l10: float

    momentum: MomentumTier
    momentum_ratio: float
    production: ProductionMetrics
    h2h: Optional[H2HData]
    h2h_boost: float
    juice: JuiceAnalysis
    usage_rate: Optional[float]
    usage_boost: float

    sweet_spot_score: int
    quality_tier: QualityTier
    analysis_timestamp: str

    @property
    def dedup_key(self) -> Tuple[str, PropType]:
        return self.player_name.lower(), self.prop_type

    def to_dict(self) -> Dict:
        """Plain-JSON view (enum values, inf -> None)"""
        def convert(obj):
            if isinstance(obj, Enum):
                return obj.value
            if isinstance(obj, float) and math.isinf(obj):
                return None
            if isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [convert(v) for v in obj]
            return obj

        data = convert(asdict(self))
        data["l10_stats"]["hit_rate"] = self.l10_stats.hit_rate
        return data


@dataclass
class SweetSpotSummary:
    total_picks: int = 0
    tier_counts: Dict[QualityTier, int] = field(default_factory=lambda: {tier: 0 for tier in QualityTier})
    unique_teams: int = 0
    by_prop_type: Dict[PropType, int] = field(default_factory=lambda: {prop: 0 for prop in PropType})


@dataclass
class SweetSpotReport:
    spots: List[SweetSpot]
    summary: SweetSpotSummary


# =============================================================================
# BOUNDARY HELPERS
# =============================================================================

def map_prop_type(raw: Optional[str]) -> Optional[PropType]:
    """Map a market label (e.g. 'player_points', '3PM') to a PropType"""
    if not raw:
        return None
    normalized = re.sub(r"[_\s]", "", raw.lower())
    if "point" in normalized or normalized == "pts":
        return PropType.POINTS
    if "assist" in normalized or normalized == "ast":
        return PropType.ASSISTS
    if "three" in normalized or "3pt" in normalized or normalized == "3pm":
        return PropType.THREES
    if "block" in normalized or normalized == "blk":
        return PropType.BLOCKS
    return None


_MATCHUP_SEPARATOR = re.compile(r"\s*@\s*|\s+(?:vs\.?|at)\s+", re.IGNORECASE)


def parse_game_description(description: Optional[str], team: Optional[str] = None) -> Tuple[str, str]:
    """
    Split "Away @ Home" / "Team vs Team" into (team, opponent).

    Without a known team the first side is treated as the player's team.
    """
    if not description or not description.strip():
        return team or "Unknown", "Unknown"

    parts = [p.strip() for p in _MATCHUP_SEPARATOR.split(description.strip(), maxsplit=1) if p.strip()]
    if len(parts) < 2:
        return team or parts[0], "Unknown"

    first, second = parts
    if team and team.lower() == second.lower():
        return second, first
    return first, second


class MatchupIndex:
    """Lookup of matchup records by player/opponent, prop-specific first"""

    def __init__(self, records: List[MatchupRecord]):
        self._records: Dict[Tuple[str, str, Optional[PropType]], MatchupRecord] = {}
        for record in records:
            prop_type = None
            if record.prop_type:
                prop_type = map_prop_type(record.prop_type)
                if prop_type is None:
                    continue
            self._records[(record.player_name.lower(), record.opponent.lower(), prop_type)] = record

    def find(self, player_name: str, opponent: str, prop_type: PropType) -> Optional[MatchupRecord]:
        player, opp = player_name.lower(), opponent.lower()
        return self._records.get((player, opp, prop_type)) or self._records.get((player, opp, None))

    def __len__(self):
        return len(self._records)


# =============================================================================
# FACTOR ANALYZERS
# =============================================================================

def _window_values(logs: List[GameLog], stat_field: str, window: int) -> List[float]:
    values = (getattr(log, stat_field) for log in logs[:window])
    return [float(v) for v in values if v is not None]


def calculate_l10_stats(
    logs: List[GameLog],
    stat_field: str,
    line: float,
    side: PickSide,
    window: int = 10
) -> L10Stats:
    """Floor/ceiling/hit stats over the trailing window; nulls are skipped, not zeroed"""
    values = _window_values(logs, stat_field, window)
    if not values:
        return L10Stats()

    ordered = sorted(values)
    if side == PickSide.OVER:
        hit_count = sum(1 for v in values if v > line)
    else:
        hit_count = sum(1 for v in values if v < line)

    return L10Stats(
        min=ordered[0],
        max=ordered[-1],
        avg=float(np.mean(values)),
        median=ordered[len(ordered) // 2],
        hit_count=hit_count,
        games_played=len(values),
    )


def calculate_l5_stats(logs: List[GameLog], stat_field: str, window: int = 5) -> L5Stats:
    values = _window_values(logs, stat_field, window)
    if not values:
        return L5Stats()
    return L5Stats(avg=float(np.mean(values)), games_played=len(values))


def calculate_momentum(l5_avg: float, l10_avg: float) -> Tuple[MomentumTier, float]:
    """HOT at L5/L10 >= 1.15, COLD at <= 0.85"""
    if l10_avg == 0:
        return MomentumTier.NORMAL, 1.0

    ratio = l5_avg / l10_avg
    if ratio >= 1.15:
        return MomentumTier.HOT, ratio
    if ratio <= 0.85:
        return MomentumTier.COLD, ratio
    return MomentumTier.NORMAL, ratio


def calculate_production(logs: List[GameLog], stat_field: str, line: float) -> ProductionMetrics:
    """
    Minutes-weighted production rate (total stat / total minutes) and the
    minutes the player needs at that rate to clear the line.
    """
    valid = [
        log for log in logs
        if log.minutes_played is not None and log.minutes_played > 0
        and getattr(log, stat_field) is not None
    ]
    if not valid:
        return ProductionMetrics(0.0, 0.0, math.inf, MinutesVerdict.UNLIKELY)

    minutes = np.array([log.minutes_played for log in valid], dtype=float)
    stats = np.array([getattr(log, stat_field) for log in valid], dtype=float)

    total_minutes = float(minutes.sum())
    stat_per_minute = float(stats.sum()) / total_minutes if total_minutes > 0 else 0.0
    avg_minutes = float(minutes.mean())
    minutes_needed = line / stat_per_minute if stat_per_minute > 0 else math.inf

    if minutes_needed <= avg_minutes * 0.9:
        verdict = MinutesVerdict.CAN_MEET
    elif minutes_needed <= avg_minutes * 1.1:
        verdict = MinutesVerdict.RISKY
    else:
        verdict = MinutesVerdict.UNLIKELY

    return ProductionMetrics(stat_per_minute, avg_minutes, minutes_needed, verdict)


def calculate_juice(
    price: Optional[int],
    side: PickSide,
    thresholds: JuiceThresholds = JuiceThresholds()
) -> JuiceAnalysis:
    effective = price if price is not None else -110

    if effective >= thresholds.value:
        boost = 0.15
    elif effective >= thresholds.light:
        boost = 0.0
    elif effective >= thresholds.medium:
        boost = -0.05
    else:
        boost = -0.10

    return JuiceAnalysis(
        side=side,
        price=effective,
        value_boost=boost,
        is_value_play=effective >= thresholds.value,
        is_trap=effective < thresholds.medium,
    )


def build_h2h(record: Optional[MatchupRecord], opponent: str, line: float) -> Optional[H2HData]:
    """Matchup record -> H2HData. Missing min/max are estimated from the average."""
    if record is None or record.games_played <= 0:
        return None

    avg = record.avg_stat if record.avg_stat is not None else 0.0
    min_stat = record.min_stat if record.min_stat is not None else avg * 0.8
    max_stat = record.max_stat if record.max_stat is not None else avg * 1.2

    if avg > line or line <= 0:
        hit_rate = 1.0
    else:
        hit_rate = avg / line

    return H2HData(opponent, avg, min_stat, max_stat, record.games_played, hit_rate)


def calculate_h2h_boost(h2h: Optional[H2HData], line: float, side: PickSide) -> float:
    # One meeting is noise
    if h2h is None or h2h.games_played < 2:
        return 0.0

    if side == PickSide.OVER:
        if h2h.min_stat >= line:
            return 0.15
        if h2h.avg_stat >= line * 1.15:
            return 0.10
        if h2h.avg_stat >= line:
            return 0.05
        if h2h.avg_stat < line * 0.85:
            return -0.10
    else:
        if h2h.max_stat <= line:
            return 0.15
        if h2h.avg_stat <= line * 0.85:
            return 0.10
        if h2h.avg_stat <= line:
            return 0.05
        if h2h.avg_stat > line * 1.15:
            return -0.10

    return 0.0


def calculate_usage_boost(usage_rate: Optional[float]) -> float:
    if usage_rate is None:
        return 0.0
    if usage_rate >= 30:
        return 0.10
    if usage_rate >= 25:
        return 0.05
    if usage_rate >= 20:
        return 0.02
    return 0.0


def calculate_floor_protection(l10: L10Stats, line: float, side: PickSide) -> float:
    if line == 0:
        return 1.0
    if side == PickSide.OVER:
        return l10.min / line
    if l10.max <= line:
        return 1.0
    return line / l10.max


def calculate_edge(l10_avg: float, line: float, side: PickSide) -> float:
    return l10_avg - line if side == PickSide.OVER else line - l10_avg


def determine_optimal_side(l10_over: L10Stats, line: float) -> PickSide:
    """
    Pick a side from OVER-oriented L10 stats.

    A guaranteed floor (min clears the line) or ceiling (max never reaches
    it) wins over raw hit rate.
    """
    if l10_over.games_played > 0 and l10_over.min >= line:
        return PickSide.OVER
    if l10_over.max < line:
        return PickSide.UNDER

    over_rate = l10_over.hit_rate
    under_rate = (
        (l10_over.games_played - l10_over.hit_count) / l10_over.games_played
        if l10_over.games_played > 0 else 0.0
    )
    return PickSide.OVER if over_rate >= under_rate else PickSide.UNDER


# =============================================================================
# SCORING AND CLASSIFICATION
# =============================================================================

def calculate_sweet_spot_score(factors: ScoreFactors) -> int:
    """Weighted composite of the rescaled factors, as an integer 0-100"""
    w = ScoreWeights
    edge_score = (min(max(factors.edge / w.EDGE_SCALE, -1.0), 1.0) + 1) / 2
    floor_score = min(factors.floor_protection, w.FLOOR_CAP) / w.FLOOR_CAP

    score = (
        floor_score * w.FLOOR
        + edge_score * w.EDGE
        + factors.hit_rate_l10 * w.HIT_RATE
        + (factors.usage_boost + w.USAGE_OFFSET) / w.USAGE_SPAN * w.USAGE
        + (factors.juice_boost + w.JUICE_OFFSET) / w.JUICE_SPAN * w.JUICE
        + (factors.h2h_boost + w.H2H_OFFSET) / w.H2H_SPAN * w.H2H
    )

    return int(min(max(math.floor(score * 100 + 0.5), 0), 100))


def classify_quality_tier(
    floor_protection: float,
    hit_rate_l10: float,
    edge: float,
    thresholds: QualityThresholds = QualityThresholds()
) -> QualityTier:
    t = thresholds
    if floor_protection >= t.elite_min_floor and hit_rate_l10 >= t.elite_min_hit_rate:
        return QualityTier.ELITE
    if floor_protection >= t.premium_min_floor or (hit_rate_l10 >= t.premium_min_hit_rate and edge > 0):
        return QualityTier.PREMIUM
    if hit_rate_l10 >= t.strong_min_hit_rate and edge > 0:
        return QualityTier.STRONG
    if hit_rate_l10 >= t.standard_min_hit_rate:
        return QualityTier.STANDARD
    return QualityTier.AVOID


def is_better_spot(candidate: SweetSpot, incumbent: SweetSpot) -> bool:
    """Higher floor protection wins; score breaks an exact floor tie"""
    if candidate.floor_protection != incumbent.floor_protection:
        return candidate.floor_protection > incumbent.floor_protection
    return candidate.sweet_spot_score > incumbent.sweet_spot_score


def deduplicate_spots(spots: List[SweetSpot]) -> List[SweetSpot]:
    best: Dict[Tuple[str, PropType], SweetSpot] = {}
    for spot in spots:
        incumbent = best.get(spot.dedup_key)
        if incumbent is None or is_better_spot(spot, incumbent):
            best[spot.dedup_key] = spot
    return list(best.values())


def rank_spots(spots: List[SweetSpot]) -> List[SweetSpot]:
    """Tier first (ELITE on top), then score descending"""
    return sorted(spots, key=lambda s: (TIER_ORDER[s.quality_tier], -s.sweet_spot_score))


def build_summary(spots: List[SweetSpot]) -> SweetSpotSummary:
    summary = SweetSpotSummary(total_picks=len(spots))
    for spot in spots:
        summary.tier_counts[spot.quality_tier] += 1
        summary.by_prop_type[spot.prop_type] += 1
    summary.unique_teams = len({spot.team_name for spot in spots})
    return summary


# =============================================================================
# ENGINE
# =============================================================================

class SweetSpotEngine:
    """
    Runs one scoring cycle over a candidate set.

    Each candidate is scored independently; dedup and ranking run once all
    candidates are scored.
    """

    def __init__(self, config: EngineConfig = None):
        self.config = config or EngineConfig()

    def score_candidate(
        self,
        candidate: PropCandidate,
        logs: List[GameLog],
        matchups: MatchupIndex,
        analyzed_at: str
    ) -> Optional[SweetSpot]:
        """Score one line; None when the candidate is skipped"""
        cfg = self.config
        prop_type = map_prop_type(candidate.prop_type)
        if prop_type is None:
            logger.debug(f"Skipping {candidate.player_name}: unsupported prop '{candidate.prop_type}'")
            return None

        stat_field = PROP_TYPE_CONFIG[prop_type].game_log_field
        logs = logs[:cfg.max_logs_per_player]
        valid_games = sum(1 for log in logs if getattr(log, stat_field) is not None)
        if valid_games < cfg.min_games:
            logger.debug(f"Skipping {candidate.player_name} {prop_type.value}: only {valid_games} games")
            return None

        line = candidate.line

        l10_over = calculate_l10_stats(logs, stat_field, line, PickSide.OVER, cfg.long_window)
        # Side, floor and tier all come from this window
        if l10_over.games_played < cfg.min_games:
            logger.debug(
                f"Skipping {candidate.player_name} {prop_type.value}: "
                f"only {l10_over.games_played} games in the last {cfg.long_window}"
            )
            return None

        side = determine_optimal_side(l10_over, line)
        l10 = l10_over if side == PickSide.OVER else calculate_l10_stats(
            logs, stat_field, line, PickSide.UNDER, cfg.long_window
        )

        l5 = calculate_l5_stats(logs, stat_field, cfg.short_window)
        momentum, momentum_ratio = calculate_momentum(l5.avg, l10.avg)
        production = calculate_production(logs, stat_field, line)

        floor_protection = calculate_floor_protection(l10, line, side)
        edge = calculate_edge(l10.avg, line, side)
        hit_rate = l10.hit_rate

        usage_rate = logs[0].usage_rate if logs else None
        usage_boost = calculate_usage_boost(usage_rate)

        price = candidate.over_price if side == PickSide.OVER else candidate.under_price
        juice = calculate_juice(price, side, cfg.juice)

        team_name, opponent = parse_game_description(candidate.game_description, candidate.team)
        h2h = build_h2h(matchups.find(candidate.player_name, opponent, prop_type), opponent, line)
        h2h_boost = calculate_h2h_boost(h2h, line, side)

        score = calculate_sweet_spot_score(ScoreFactors(
            floor_protection=floor_protection,
            edge=edge,
            hit_rate_l10=hit_rate,
            usage_boost=usage_boost,
            juice_boost=juice.value_boost,
            h2h_boost=h2h_boost,
        ))
        tier = classify_quality_tier(floor_protection, hit_rate, edge, cfg.quality)

        if tier == QualityTier.AVOID and hit_rate < cfg.discard_avoid_below:
            logger.debug(f"Discarding {candidate.player_name} {side.value} {line} {prop_type.value}: hit rate {hit_rate:.0%}")
            return None

        return SweetSpot(
            id=candidate.id,
            player_name=candidate.player_name,
            team_name=team_name,
            opponent_name=opponent,
            prop_type=prop_type,
            side=side,
            line=line,
            over_price=candidate.effective_over_price,
            under_price=candidate.effective_under_price,
            game_description=candidate.game_description or "",
            game_time=candidate.commence_time or "",
            l10_stats=l10,
            l5_stats=l5,
            floor_protection=floor_protection,
            edge=edge,
            hit_rate_l10=hit_rate,
            momentum=momentum,
            momentum_ratio=momentum_ratio,
            production=production,
            h2h=h2h,
            h2h_boost=h2h_boost,
            juice=juice,
            usage_rate=usage_rate,
            usage_boost=usage_boost,
            sweet_spot_score=score,
            quality_tier=tier,
            analysis_timestamp=analyzed_at,
        )

    def run(self, inputs: ScoringInputs, analyzed_at: Optional[datetime] = None) -> SweetSpotReport:
        """Score, dedupe and rank every candidate"""
        stamp = (analyzed_at or datetime.now(timezone.utc)).isoformat()
        matchups = MatchupIndex(inputs.matchups)

        scored = []
        for candidate in inputs.candidates:
            spot = self.score_candidate(
                candidate,
                inputs.logs_by_player.get(candidate.player_name, []),
                matchups,
                stamp
            )
            if spot is not None:
                scored.append(spot)

        spots = rank_spots(deduplicate_spots(scored))
        summary = build_summary(spots)

        logger.info(
            f"Scored {len(inputs.candidates)} lines -> {len(scored)} kept, "
            f"{len(spots)} after dedup ({summary.tier_counts[QualityTier.ELITE]} elite)"
        )
        return SweetSpotReport(spots=spots, summary=summary)
