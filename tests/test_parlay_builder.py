from dataclasses import replace
from datetime import datetime, timezone

import pytest

from conftest import SCENARIO_POINTS, make_candidate, make_logs
from data_pipeline import ScoringInputs
from parlay_builder import (
    KellyCriterion,
    ParlayLeg,
    ParlaySlip,
    QualityFilter,
    build_parlay,
    filter_spots,
    sort_spots,
    spots_to_dataframe,
    sweet_spots_only,
)
from sweet_spot_engine import PickSide, PropType, QualityTier, SweetSpotEngine

STAMP = datetime(2026, 1, 28, 17, 0, tzinfo=timezone.utc)


@pytest.fixture
def spots():
    logs = (
        make_logs("A", SCENARIO_POINTS)
        + make_logs("B", [22, 18, 21, 23, 24, 20, 25, 22, 16, 19])
        + make_logs("C", [12, 9, 14, 10, 13, 11, 15, 8, 12, 13])
        + make_logs("D", [20, 22, 18, 25, 19, 21, 23, 20, 24, 19], assists=[6, 7, 5, 8, 6, 7, 9, 6, 7, 8])
    )
    by_player = {}
    for log in logs:
        by_player.setdefault(log.player_name, []).append(log)

    candidates = [
        make_candidate(player="A", line=17.5, over_price=-130),
        make_candidate(player="B", line=17.5, over_price=+105),
        make_candidate(player="C", line=11.5),
        make_candidate(player="D", line=4.5, prop_type="player_assists", over_price=-160),
    ]
    return SweetSpotEngine().run(ScoringInputs(candidates, by_player, []), analyzed_at=STAMP).spots


def test_quality_bands(spots):
    elite = filter_spots(spots, quality=QualityFilter.ELITE)
    assert {s.player_name for s in elite} == {"A", "D"}
    assert {s.quality_tier for s in elite} == {QualityTier.ELITE}

    premium_plus = filter_spots(spots, quality=QualityFilter.PREMIUM_PLUS)
    assert {s.player_name for s in premium_plus} == {"A", "B", "D"}
    assert premium_plus[-1].player_name == "B"
    assert "C" not in {s.player_name for s in sweet_spots_only(spots)}
    assert len(filter_spots(spots)) == len(spots)


def test_prop_filter(spots):
    assists = filter_spots(spots, prop_type=PropType.ASSISTS)
    assert [s.player_name for s in assists] == ["D"]


def test_sorts(spots):
    assert sort_spots(spots, "juice")[0].player_name == "B"
    floors = [s.floor_protection for s in sort_spots(spots, "floor")]
    assert floors == sorted(floors, reverse=True)
    with pytest.raises(ValueError):
        sort_spots(spots, "vibes")


def test_dataframe_columns(spots):
    df = spots_to_dataframe(spots)
    assert len(df) == len(spots)
    assert {"player", "tier", "score", "floor", "edge"} <= set(df.columns)


def test_leg_from_spot(spots):
    spot = next(s for s in spots if s.player_name == "A")
    leg = ParlayLeg.from_spot(spot)
    assert leg.description == "A OVER 17.5 PTS"
    assert leg.odds == -130
    assert leg.side == PickSide.OVER
    assert leg.prop_label == "Points"


def test_slip_rejects_duplicate_player_prop(spots):
    slip = ParlaySlip()
    spot = spots[0]
    assert slip.add_leg(spot) is True
    assert slip.add_leg(spot) is False
    assert len(slip.legs) == 1


def test_slip_skips_leg_without_a_real_price(spots):
    spot = next(s for s in spots if s.player_name == "A")
    slip = ParlaySlip()
    assert slip.add_leg(replace(spot, over_price=0)) is False
    assert slip.legs == []
    assert slip.combined_american_odds == 0

    with pytest.raises(ValueError):
        KellyCriterion.american_to_decimal(0)


def test_two_leg_combined_odds():
    slip = ParlaySlip(legs=[
        ParlayLeg("x", "X", "Points", 10.5, PickSide.OVER, -110, 0.8, QualityTier.STRONG),
        ParlayLeg("y", "Y", "Points", 12.5, PickSide.UNDER, -110, 1.0, QualityTier.ELITE),
    ])
    assert slip.combined_decimal_odds == pytest.approx((1 + 100 / 110) ** 2)
    assert slip.combined_american_odds == 264
    assert slip.naive_probability == pytest.approx(0.8 * 0.99)
    assert slip.recommended_units <= KellyCriterion.MAX_PARLAY_BET * 100


def test_build_parlay_one_leg_per_player(spots):
    slip = build_parlay(spots, max_legs=3)
    players = [leg.player_name for leg in slip.legs]
    assert len(players) == 3
    assert len(set(players)) == 3
    assert players[0] == spots[0].player_name


def test_empty_slip():
    slip = ParlaySlip()
    assert slip.combined_american_odds == 0
    assert slip.naive_probability == 0.0
    assert slip.recommended_units == 0.0


def test_kelly():
    assert KellyCriterion.american_to_decimal(150) == pytest.approx(2.5)
    assert KellyCriterion.american_to_decimal(-200) == pytest.approx(1.5)
    assert KellyCriterion.decimal_to_american(2.5) == 150
    assert KellyCriterion.decimal_to_american(1.5) == -200
    assert KellyCriterion.calculate_kelly_fraction(0.4, -110) == 0
    assert KellyCriterion.calculate_units(0.9, 100) == KellyCriterion.MAX_SINGLE_BET * 100
    assert KellyCriterion.calculate_ev(0.5, 100) == 0.0
