import pytest

from data_pipeline import GameLog, MatchupRecord, PropCandidate


SCENARIO_POINTS = [20, 22, 18, 25, 19, 21, 23, 20, 24, 19]


def make_logs(player, points, minutes=34.0, usage_rate=None, **stats):
    """Most-recent-first logs, one per value"""
    logs = []
    for i, value in enumerate(points):
        logs.append(GameLog(
            player_name=player,
            game_date=f"2026-01-{28 - i:02d}",
            points=value,
            assists=stats.get("assists", [None] * len(points))[i],
            minutes_played=minutes,
            usage_rate=usage_rate,
        ))
    return logs


def make_candidate(player="Jalen Brunson", line=17.5, prop_type="player_points",
                   over_price=-110, under_price=-110, description="New York Knicks @ Boston Celtics",
                   candidate_id=None):
    return PropCandidate(
        id=candidate_id or f"{player}-{prop_type}-{line}",
        player_name=player,
        prop_type=prop_type,
        line=line,
        over_price=over_price,
        under_price=under_price,
        game_description=description,
        commence_time="2026-01-29T00:30:00Z",
    )


@pytest.fixture
def scenario_logs():
    return make_logs("Jalen Brunson", SCENARIO_POINTS, usage_rate=31.0)


@pytest.fixture
def brunson_vs_boston():
    return MatchupRecord(
        player_name="Jalen Brunson",
        opponent="Boston Celtics",
        prop_type="points",
        avg_stat=24.0,
        min_stat=18.0,
        max_stat=31.0,
        games_played=4,
    )
