"""
data_pipeline.py - Scoring Input Pipeline

Fetches the three collections the sweet spot engine needs from the hosted
prop store (PostgREST API):
- unified_props        - live market lines (one row per quoted line)
- nba_player_game_logs - per-game box score lines, most recent first
- matchup_history      - player vs opponent aggregates

Rows are normalized into typed, immutable records before they reach the
engine. Snapshots can be persisted to the local SQLite cache for offline runs.
"""

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from cache_db import CacheDB

logger = logging.getLogger(__name__)


DEFAULT_PRICE = -110
LOGS_PER_PLAYER = 15
EASTERN = timezone(timedelta(hours=-5))


# =============================================================================
# ERRORS
# =============================================================================

class SweetSpotError(Exception):
    """Base error for the sweet spot pipeline"""


class StoreUnavailableError(SweetSpotError):
    """The prop store could not be reached or is not configured"""


class InputFormatError(SweetSpotError):
    """A raw record or input file is missing required fields"""


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PropCandidate:
    """One quoted market line for one player/stat on one date"""
    id: str
    player_name: str
    prop_type: str  # raw market label, e.g. "player_points"
    line: float
    over_price: Optional[int] = None
    under_price: Optional[int] = None
    game_description: Optional[str] = None
    commence_time: Optional[str] = None
    team: Optional[str] = None  # only when the feed knows the player's team

    @property
    def effective_over_price(self) -> int:
        return self.over_price if self.over_price is not None else DEFAULT_PRICE

    @property
    def effective_under_price(self) -> int:
        return self.under_price if self.under_price is not None else DEFAULT_PRICE

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PropCandidate":
        for key in ("player_name", "prop_type", "current_line"):
            if row.get(key) is None:
                raise InputFormatError(f"prop row missing '{key}': {row}")

        return cls(
            id=str(row.get("id") or f"{row['player_name']}|{row['prop_type']}|{row['current_line']}"),
            player_name=row["player_name"],
            prop_type=row["prop_type"],
            line=float(row["current_line"]),
            over_price=_optional_price(row.get("over_price")),
            under_price=_optional_price(row.get("under_price")),
            game_description=row.get("game_description"),
            commence_time=row.get("commence_time"),
            team=row.get("team"),
        )


@dataclass(frozen=True)
class GameLog:
    """Single game performance (stats are None when not recorded)"""
    player_name: str
    game_date: str
    points: Optional[float] = None
    assists: Optional[float] = None
    threes_made: Optional[float] = None
    blocks: Optional[float] = None
    minutes_played: Optional[float] = None
    usage_rate: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "GameLog":
        for key in ("player_name", "game_date"):
            if row.get(key) is None:
                raise InputFormatError(f"game log row missing '{key}': {row}")

        return cls(
            player_name=row["player_name"],
            game_date=str(row["game_date"]),
            points=_optional_float(row.get("points")),
            assists=_optional_float(row.get("assists")),
            threes_made=_optional_float(row.get("threes_made")),
            blocks=_optional_float(row.get("blocks")),
            minutes_played=_optional_float(row.get("minutes_played")),
            usage_rate=_optional_float(row.get("usage_rate")),
        )


@dataclass(frozen=True)
class MatchupRecord:
    """Aggregated history of a player against one opponent"""
    player_name: str
    opponent: str
    prop_type: Optional[str] = None
    avg_stat: Optional[float] = None
    min_stat: Optional[float] = None
    max_stat: Optional[float] = None
    games_played: int = 0

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MatchupRecord":
        for key in ("player_name", "opponent"):
            if row.get(key) is None:
                raise InputFormatError(f"matchup row missing '{key}': {row}")

        return cls(
            player_name=row["player_name"],
            opponent=row["opponent"],
            prop_type=row.get("prop_type"),
            avg_stat=_optional_float(row.get("avg_stat")),
            min_stat=_optional_float(row.get("min_stat")),
            max_stat=_optional_float(row.get("max_stat")),
            games_played=int(row.get("games_played") or 0),
        )


@dataclass
class ScoringInputs:
    """Everything one scoring run consumes, already fetched"""
    candidates: List[PropCandidate] = field(default_factory=list)
    logs_by_player: Dict[str, List[GameLog]] = field(default_factory=dict)
    matchups: List[MatchupRecord] = field(default_factory=list)


def _optional_price(value: Any) -> Optional[int]:
    """American price; 0 is not a real price and reads as missing"""
    if value is None or value == "":
        return None
    price = int(float(value))
    return price if price != 0 else None


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def group_logs_by_player(logs: List[GameLog], limit: int = LOGS_PER_PLAYER) -> Dict[str, List[GameLog]]:
    """Group logs per player, most recent first, keeping the trailing `limit` games"""
    grouped: Dict[str, List[GameLog]] = defaultdict(list)
    for log in logs:
        grouped[log.player_name].append(log)

    return {
        player: sorted(player_logs, key=lambda log: log.game_date, reverse=True)[:limit]
        for player, player_logs in grouped.items()
    }


def eastern_day_window(target_date: date) -> Tuple[datetime, datetime]:
    """UTC-aware [start, end) bounds of a calendar day in Eastern time"""
    start = datetime(target_date.year, target_date.month, target_date.day, tzinfo=EASTERN)
    return start, start + timedelta(days=1)


def build_inputs(
    prop_rows: List[Dict],
    log_rows: List[Dict],
    matchup_rows: List[Dict]
) -> ScoringInputs:
    """Normalize raw store rows into ScoringInputs"""
    candidates = [PropCandidate.from_row(row) for row in prop_rows]
    logs = [GameLog.from_row(row) for row in log_rows]
    matchups = [MatchupRecord.from_row(row) for row in matchup_rows]

    return ScoringInputs(
        candidates=candidates,
        logs_by_player=group_logs_by_player(logs),
        matchups=matchups,
    )


def load_inputs_from_json(path: str) -> ScoringInputs:
    """
    Load a scoring snapshot from a JSON file shaped like:
        {"props": [...], "game_logs": [...], "matchups": [...]}
    """
    try:
        with open(path) as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        raise InputFormatError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or "props" not in payload:
        raise InputFormatError(f"{path} must be an object with a 'props' array")

    return build_inputs(
        payload.get("props") or [],
        payload.get("game_logs") or [],
        payload.get("matchups") or [],
    )


# =============================================================================
# API CLIENT
# =============================================================================

class PropStoreClient:
    """
    Client for the hosted prop store (PostgREST)

    Tables used:
    - /rest/v1/unified_props
    - /rest/v1/nba_player_game_logs
    - /rest/v1/matchup_history
    """

    PROP_COLUMNS = "id,player_name,prop_type,current_line,over_price,under_price,game_description,commence_time"
    LOG_COLUMNS = "player_name,game_date,points,assists,threes_made,blocks,minutes_played,usage_rate"
    MATCHUP_COLUMNS = "player_name,opponent,prop_type,avg_stat,min_stat,max_stat,games_played"

    def __init__(self, base_url: str, api_key: str, timeout: int = 30):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
        }
        self.timeout = timeout
        self._cache: Dict[str, Tuple[datetime, Any]] = {}
        self._cache_ttl = timedelta(minutes=5)

    def _make_request(self, table: str, params: List[Tuple[str, str]]) -> Optional[List[Dict]]:
        """GET a table with caching; None on failure"""
        cache_key = f"{table}:{params}"

        if cache_key in self._cache:
            cached_time, cached_data = self._cache[cache_key]
            if datetime.now() - cached_time < self._cache_ttl:
                return cached_data

        try:
            response = requests.get(
                f"{self.base_url}/rest/v1/{table}",
                headers=self.headers,
                params=params,
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

            self._cache[cache_key] = (datetime.now(), data)
            return data

        except requests.RequestException as e:
            logger.error(f"Store request failed: {table} - {e}")
            return None

    @staticmethod
    def _in_filter(values: List[str]) -> str:
        quoted = ",".join('"' + v.replace('"', '\\"') + '"' for v in values)
        return f"in.({quoted})"

    def get_props(self, start: datetime, end: datetime) -> Optional[List[Dict]]:
        """Live lines with a commence time inside [start, end)"""
        return self._make_request("unified_props", [
            ("select", self.PROP_COLUMNS),
            ("commence_time", f"gte.{start.isoformat()}"),
            ("commence_time", f"lt.{end.isoformat()}"),
            ("current_line", "not.is.null"),
        ])

    def get_game_logs(self, player_names: List[str], per_player: int = LOGS_PER_PLAYER) -> Optional[List[Dict]]:
        """Recent logs for a set of players, newest first"""
        if not player_names:
            return []
        return self._make_request("nba_player_game_logs", [
            ("select", self.LOG_COLUMNS),
            ("player_name", self._in_filter(player_names)),
            ("order", "game_date.desc"),
            ("limit", str(len(player_names) * per_player)),
        ])

    def get_matchups(self, player_names: List[str]) -> Optional[List[Dict]]:
        if not player_names:
            return []
        return self._make_request("matchup_history", [
            ("select", self.MATCHUP_COLUMNS),
            ("player_name", self._in_filter(player_names)),
        ])

    def clear_cache(self):
        self._cache.clear()


# =============================================================================
# DATA PIPELINE
# =============================================================================

class DataPipeline:
    """
    Assembles ScoringInputs for one date.

    A props failure is fatal for the run (raised before the engine is
    invoked). Game log and matchup failures degrade to empty collections.
    """

    def __init__(self, client: Optional[PropStoreClient], cache: Optional[CacheDB] = None):
        self.client = client
        self.cache = cache

    def load_inputs(self, target_date: date) -> ScoringInputs:
        """Fetch from the store (and refresh the local cache if one is attached)"""
        if self.client is None:
            raise StoreUnavailableError("prop store is not configured (set SWEETSPOT_STORE_URL)")

        start, end = eastern_day_window(target_date)
        prop_rows = self.client.get_props(start, end)
        if prop_rows is None:
            raise StoreUnavailableError(f"could not fetch props for {target_date.isoformat()}")

        player_names = sorted({row["player_name"] for row in prop_rows if row.get("player_name")})
        logger.info(f"Fetched {len(prop_rows)} lines for {len(player_names)} players")

        log_rows = self.client.get_game_logs(player_names)
        if log_rows is None:
            logger.error("Game log fetch failed, continuing without logs")
            log_rows = []

        matchup_rows = self.client.get_matchups(player_names)
        if matchup_rows is None:
            logger.error("Matchup fetch failed, continuing without matchup history")
            matchup_rows = []

        inputs = build_inputs(prop_rows, log_rows, matchup_rows)

        if self.cache is not None:
            self.cache.save_props(target_date.isoformat(), prop_rows)
            self.cache.save_game_logs(log_rows)
            self.cache.save_matchups(matchup_rows)

        return inputs

    def load_cached_inputs(self, target_date: date) -> ScoringInputs:
        """Offline run from the local snapshot cache"""
        if self.cache is None:
            raise StoreUnavailableError("no snapshot cache attached")

        prop_rows = self.cache.get_props(target_date.isoformat())
        if prop_rows is None:
            raise StoreUnavailableError(f"no fresh cached props for {target_date.isoformat()}")

        player_names = sorted({row["player_name"] for row in prop_rows})
        log_rows = self.cache.get_game_logs(player_names, LOGS_PER_PLAYER)
        matchup_rows = self.cache.get_matchups(player_names)

        return build_inputs(prop_rows, log_rows, matchup_rows)
