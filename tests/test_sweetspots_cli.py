import json
import sys
from datetime import date, datetime, timezone

import pandas as pd
import pytest

import sweetspots


def run_cli(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["sweetspots.py", *argv])
    return sweetspots.main()


def test_demo_json(monkeypatch, capsys):
    assert run_cli(monkeypatch, "--demo", "--json") == 0
    payload = json.loads(capsys.readouterr().out)

    spots = payload["spots"]
    assert [s["player_name"] for s in spots] == ["Jalen Brunson", "Derrick White", "Josh Hart"]
    assert spots[0]["line"] == 17.5
    assert spots[0]["quality_tier"] == "ELITE"
    assert spots[0]["sweet_spot_score"] == 79
    assert spots[1]["side"] == "under"
    assert payload["summary"]["total_picks"] == 3
    assert payload["summary"]["unique_teams"] == 2
    assert payload["summary"]["tier_counts"]["ELITE"] == 2


def test_demo_quality_filter_and_table(monkeypatch, capsys):
    assert run_cli(monkeypatch, "--demo", "--quality", "ELITE", "--parlay", "2") == 0
    out = capsys.readouterr().out

    assert "DEEP SWEET SPOTS" in out
    assert "Jalen Brunson OVER 17.5 PTS" in out
    assert "Josh Hart" not in out
    assert "2-Leg" in out


def test_input_file_and_csv(monkeypatch, capsys, tmp_path):
    slate = tmp_path / "slate.json"
    slate.write_text(json.dumps({
        "props": [{
            "id": "x1", "player_name": "Jalen Brunson", "prop_type": "player_assists",
            "current_line": 4.5, "over_price": -115, "under_price": -105,
            "game_description": "New York Knicks @ Boston Celtics",
        }],
        "game_logs": [
            {"player_name": "Jalen Brunson", "game_date": f"2026-01-{20 - i:02d}", "points": 25,
             "assists": a, "minutes_played": 35}
            for i, a in enumerate([6, 7, 5, 8, 6, 7])
        ],
    }))
    csv_path = tmp_path / "picks.csv"

    assert run_cli(monkeypatch, "--input", str(slate), "--csv", str(csv_path)) == 0
    df = pd.read_csv(csv_path)
    assert list(df["player"]) == ["Jalen Brunson"]
    assert df.loc[0, "prop"] == "assists"
    assert df.loc[0, "tier"] == "ELITE"


def test_offline_without_snapshot_fails(monkeypatch, tmp_path):
    monkeypatch.setenv("SWEETSPOT_CACHE_DB", str(tmp_path / "empty.db"))
    assert run_cli(monkeypatch, "--offline", "--date", "2026-01-28") == 1


def test_missing_input_file_fails(monkeypatch, tmp_path):
    assert run_cli(monkeypatch, "--input", str(tmp_path / "nope.json")) == 1


class LateNightUTC(datetime):
    """03:30 UTC on the 15th is still the evening of the 14th in New York"""
    @classmethod
    def now(cls, tz=None):
        return datetime(2026, 1, 15, 3, 30, tzinfo=timezone.utc).astimezone(tz)


def test_default_slate_is_eastern_day(monkeypatch, tmp_path):
    monkeypatch.setenv("SWEETSPOT_CACHE_DB", str(tmp_path / "cache.db"))
    monkeypatch.setattr(sweetspots, "datetime", LateNightUTC)
    assert sweetspots.eastern_today() == date(2026, 1, 14)

    requested = []

    def fake_cached(self, target_date):
        requested.append(target_date)
        return sweetspots.demo_inputs()

    monkeypatch.setattr(sweetspots.DataPipeline, "load_cached_inputs", fake_cached)
    assert run_cli(monkeypatch, "--offline") == 0
    assert requested == [date(2026, 1, 14)]


def test_malformed_date_is_a_usage_error(monkeypatch, capsys):
    with pytest.raises(SystemExit) as exc:
        run_cli(monkeypatch, "--offline", "--date", "01/28/2026")
    assert exc.value.code == 2
    assert "expected YYYY-MM-DD" in capsys.readouterr().err
