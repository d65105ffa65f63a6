import json
from datetime import date, timedelta

import pytest
import requests

import data_pipeline
from cache_db import CacheDB
from data_pipeline import (
    DataPipeline,
    GameLog,
    InputFormatError,
    PropCandidate,
    PropStoreClient,
    StoreUnavailableError,
    build_inputs,
    eastern_day_window,
    group_logs_by_player,
    load_inputs_from_json,
)

PROP_ROW = {
    "id": "p1", "player_name": "Jalen Brunson", "prop_type": "player_points",
    "current_line": 17.5, "over_price": -120, "under_price": None,
    "game_description": "New York Knicks @ Boston Celtics", "commence_time": "2026-01-29T00:30:00Z",
}


def log_rows(player, n):
    return [
        {"player_name": player, "game_date": f"2026-01-{20 - i:02d}", "points": 20 + i,
         "assists": 5, "threes_made": None, "blocks": 0, "minutes_played": 33, "usage_rate": 28.5}
        for i in range(n)
    ]


class FakeClient:
    def __init__(self, props=None, logs=None, matchups=None):
        self.props, self.logs, self.matchups = props, logs, matchups
        self.requested_window = None

    def get_props(self, start, end):
        self.requested_window = (start, end)
        return self.props

    def get_game_logs(self, player_names):
        return self.logs

    def get_matchups(self, player_names):
        return self.matchups


# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------

def test_prop_candidate_from_row_defaults_prices():
    candidate = PropCandidate.from_row(PROP_ROW)
    assert candidate.line == 17.5
    assert candidate.over_price == -120
    assert candidate.under_price is None
    assert candidate.effective_under_price == -110


def test_prop_candidate_requires_line():
    row = dict(PROP_ROW, current_line=None)
    with pytest.raises(InputFormatError):
        PropCandidate.from_row(row)


def test_prop_candidate_is_immutable():
    candidate = PropCandidate.from_row(PROP_ROW)
    with pytest.raises(AttributeError):
        candidate.line = 20.5


def test_game_log_parses_nullable_stats():
    log = GameLog.from_row(log_rows("A", 1)[0])
    assert log.points == 20.0
    assert log.threes_made is None
    assert log.usage_rate == 28.5


def test_group_logs_orders_newest_first_and_truncates():
    rows = list(reversed(log_rows("A", 20))) + log_rows("B", 3)
    grouped = group_logs_by_player([GameLog.from_row(r) for r in rows], limit=15)

    assert len(grouped["A"]) == 15
    assert grouped["A"][0].game_date == "2026-01-20"
    assert [g.game_date for g in grouped["A"]] == sorted((g.game_date for g in grouped["A"]), reverse=True)
    assert len(grouped["B"]) == 3


def test_eastern_day_window():
    start, end = eastern_day_window(date(2026, 1, 28))
    assert start.isoformat() == "2026-01-28T00:00:00-05:00"
    assert end - start == timedelta(days=1)


def test_load_inputs_from_json(tmp_path):
    path = tmp_path / "slate.json"
    path.write_text(json.dumps({
        "props": [PROP_ROW],
        "game_logs": log_rows("Jalen Brunson", 6),
        "matchups": [{"player_name": "Jalen Brunson", "opponent": "Boston Celtics", "games_played": 2}],
    }))

    inputs = load_inputs_from_json(str(path))
    assert len(inputs.candidates) == 1
    assert len(inputs.logs_by_player["Jalen Brunson"]) == 6
    assert inputs.matchups[0].games_played == 2


def test_load_inputs_from_json_rejects_bad_shape(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("[1, 2, 3]")
    with pytest.raises(InputFormatError):
        load_inputs_from_json(str(path))

    path.write_text("{not json")
    with pytest.raises(InputFormatError):
        load_inputs_from_json(str(path))


# -----------------------------------------------------------------------------
# Store client
# -----------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


def test_client_caches_successful_responses(monkeypatch):
    calls = []

    def fake_get(url, headers=None, params=None, timeout=None):
        calls.append((url, params))
        return FakeResponse([PROP_ROW])

    monkeypatch.setattr(data_pipeline.requests, "get", fake_get)
    client = PropStoreClient("https://store.example.com/", "key")
    start, end = eastern_day_window(date(2026, 1, 28))

    assert client.get_props(start, end) == [PROP_ROW]
    assert client.get_props(start, end) == [PROP_ROW]
    assert len(calls) == 1
    assert calls[0][0] == "https://store.example.com/rest/v1/unified_props"
    assert ("current_line", "not.is.null") in calls[0][1]


def test_client_returns_none_on_request_error(monkeypatch):
    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(data_pipeline.requests, "get", fake_get)
    client = PropStoreClient("https://store.example.com", "key")
    assert client.get_matchups(["Jalen Brunson"]) is None


def test_client_in_filter_quotes_names():
    assert PropStoreClient._in_filter(["A", 'B "Jr"']) == 'in.("A","B \\"Jr\\"")'


def test_client_skips_empty_player_lists():
    client = PropStoreClient("https://store.example.com", "key")
    assert client.get_game_logs([]) == []
    assert client.get_matchups([]) == []


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------

def test_pipeline_requires_client():
    with pytest.raises(StoreUnavailableError):
        DataPipeline(None).load_inputs(date(2026, 1, 28))


def test_pipeline_props_failure_is_fatal():
    with pytest.raises(StoreUnavailableError):
        DataPipeline(FakeClient(props=None)).load_inputs(date(2026, 1, 28))


def test_pipeline_degrades_when_logs_and_matchups_fail():
    client = FakeClient(props=[PROP_ROW], logs=None, matchups=None)
    inputs = DataPipeline(client).load_inputs(date(2026, 1, 28))

    assert len(inputs.candidates) == 1
    assert inputs.logs_by_player == {}
    assert inputs.matchups == []
    assert client.requested_window[0].isoformat() == "2026-01-28T00:00:00-05:00"


def test_pipeline_round_trips_through_cache(tmp_path):
    cache = CacheDB(str(tmp_path / "cache.db"))
    client = FakeClient(
        props=[PROP_ROW],
        logs=log_rows("Jalen Brunson", 8),
        matchups=[{"player_name": "Jalen Brunson", "opponent": "Boston Celtics",
                   "prop_type": "points", "avg_stat": 24, "games_played": 3}],
    )
    pipeline = DataPipeline(client, cache)
    fetched = pipeline.load_inputs(date(2026, 1, 28))
    cached = DataPipeline(None, cache).load_cached_inputs(date(2026, 1, 28))

    assert cached.candidates == fetched.candidates
    assert cached.logs_by_player == fetched.logs_by_player
    assert cached.matchups == fetched.matchups


def test_offline_without_snapshot_raises(tmp_path):
    cache = CacheDB(str(tmp_path / "cache.db"))
    with pytest.raises(StoreUnavailableError):
        DataPipeline(None, cache).load_cached_inputs(date(2026, 1, 28))


def test_build_inputs_rejects_incomplete_rows():
    with pytest.raises(InputFormatError):
        build_inputs([PROP_ROW], [{"player_name": "A"}], [])


def test_zero_price_reads_as_missing():
    candidate = PropCandidate.from_row(dict(PROP_ROW, over_price=0, under_price="0"))
    assert candidate.over_price is None
    assert candidate.effective_over_price == -110
    assert candidate.effective_under_price == -110
