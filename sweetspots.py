#!/usr/bin/env python3
"""
sweetspots.py - Deep Sweet Spots Entry Point

Usage:
    python sweetspots.py --demo                      # Built-in sample slate
    python sweetspots.py                             # Today's slate from the prop store
    python sweetspots.py --date 2026-01-14 --offline # Score the cached snapshot
    python sweetspots.py --input slate.json --quality STRONG+ --json
    python sweetspots.py --prop points --sort floor --csv picks.csv
"""

import os
import sys
import json
import argparse
import logging
from datetime import date, datetime
from typing import List

from dotenv import load_dotenv

from cache_db import CacheDB, DB_PATH
from data_pipeline import (
    EASTERN, DataPipeline, PropStoreClient, ScoringInputs, SweetSpotError,
    build_inputs, load_inputs_from_json
)
from parlay_builder import QualityFilter, SORT_KEYS, build_parlay, filter_spots, sort_spots, spots_to_dataframe
from sweet_spot_engine import PROP_TYPE_CONFIG, PropType, QualityTier, SweetSpot, SweetSpotEngine, SweetSpotReport

logger = logging.getLogger(__name__)


def demo_inputs() -> ScoringInputs:
    """Small hand-built slate: one floor lock, one fade, one coin flip"""
    def logs(player, values, minutes, usage):
        return [
            {"player_name": player, "game_date": f"2026-01-{14 - i:02d}", "points": v,
             "assists": None, "threes_made": None, "blocks": None,
             "minutes_played": m, "usage_rate": usage}
            for i, (v, m) in enumerate(zip(values, minutes))
        ]

    props = [
        {"id": "demo-1", "player_name": "Jalen Brunson", "prop_type": "player_points",
         "current_line": 17.5, "over_price": -120, "under_price": -105,
         "game_description": "New York Knicks @ Boston Celtics", "commence_time": "2026-01-15T00:30:00Z"},
        {"id": "demo-2", "player_name": "Jalen Brunson", "prop_type": "player_points",
         "current_line": 19.5, "over_price": -105, "under_price": -120,
         "game_description": "New York Knicks @ Boston Celtics", "commence_time": "2026-01-15T00:30:00Z"},
        {"id": "demo-3", "player_name": "Derrick White", "prop_type": "player_points",
         "current_line": 26.5, "over_price": -110, "under_price": -110,
         "game_description": "Boston Celtics vs New York Knicks", "commence_time": "2026-01-15T00:30:00Z"},
        {"id": "demo-4", "player_name": "Josh Hart", "prop_type": "player_points",
         "current_line": 11.5, "over_price": +100, "under_price": -125,
         "game_description": "New York Knicks @ Boston Celtics", "commence_time": "2026-01-15T00:30:00Z"},
    ]
    log_rows = (
        logs("Jalen Brunson", [20, 22, 18, 25, 19, 21, 23, 20, 24, 19], [34] * 10, 31.2)
        + logs("Derrick White", [15, 18, 12, 20, 16, 14, 19, 17, 13, 22], [32] * 10, 21.0)
        + logs("Josh Hart", [12, 9, 14, 10, 13, 11, 15, 8, 12, 13], [36] * 10, 16.5)
    )
    matchups = [
        {"player_name": "Jalen Brunson", "opponent": "Boston Celtics", "prop_type": "points",
         "avg_stat": 24.0, "min_stat": 18.0, "max_stat": 31.0, "games_played": 4},
    ]
    return build_inputs(props, log_rows, matchups)


def eastern_today() -> date:
    """Slates are keyed by the Eastern calendar day"""
    return datetime.now(EASTERN).date()


def slate_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', expected YYYY-MM-DD")


def load_inputs(args) -> ScoringInputs:
    if args.demo:
        return demo_inputs()
    if args.input:
        return load_inputs_from_json(args.input)

    store_url = os.getenv("SWEETSPOT_STORE_URL")
    store_key = os.getenv("SWEETSPOT_STORE_KEY", "")
    client = PropStoreClient(store_url, store_key) if store_url else None
    cache = CacheDB(os.getenv("SWEETSPOT_CACHE_DB", DB_PATH)) if (args.offline or args.cache) else None

    pipeline = DataPipeline(client, cache)
    target = args.date or eastern_today()
    if args.offline:
        return pipeline.load_cached_inputs(target)
    return pipeline.load_inputs(target)


def format_report(report: SweetSpotReport, spots: List[SweetSpot]) -> str:
    summary = report.summary
    lines = [
        "",
        "=" * 78,
        "    DEEP SWEET SPOTS",
        "=" * 78,
        "  " + " | ".join(f"{tier.value}: {summary.tier_counts[tier]}" for tier in QualityTier),
        f"  Total: {summary.total_picks} | Teams: {summary.unique_teams} | "
        + ", ".join(f"{p.value}: {summary.by_prop_type[p]}" for p in PropType),
        "-" * 78,
    ]

    if not spots:
        lines.append("  No sweet spots found")

    for spot in spots:
        config = PROP_TYPE_CONFIG[spot.prop_type]
        l10 = spot.l10_stats
        lines.extend([
            f"  [{spot.quality_tier.value:<8}] {spot.sweet_spot_score:>3}  "
            f"{spot.player_name} {spot.side.value.upper()} {spot.line:g} {config.short_label} "
            f"({spot.juice.price:+d}) vs {spot.opponent_name}",
            f"      L10 {l10.hit_count}/{l10.games_played} | min {l10.min:g} max {l10.max:g} "
            f"avg {l10.avg:.1f} | floor {spot.floor_protection:.2f} | edge {spot.edge:+.1f} | "
            f"{spot.momentum.value} | {spot.production.verdict.value}",
        ])

    lines.append("=" * 78)
    return "\n".join(lines)


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="Score today's props for sweet spots")
    parser.add_argument("--date", type=slate_date, help="Slate date (YYYY-MM-DD, Eastern)")
    parser.add_argument("--input", type=str, help="JSON file with props, game_logs, matchups")
    parser.add_argument("--demo", action="store_true", help="Score a built-in sample slate")
    parser.add_argument("--cache", action="store_true", help="Write fetched data to the snapshot cache")
    parser.add_argument("--offline", action="store_true", help="Score the cached snapshot only")
    parser.add_argument("--prop", choices=[p.value for p in PropType], help="Only this prop type")
    parser.add_argument("--quality", choices=[q.value for q in QualityFilter], default="all")
    parser.add_argument("--sort", choices=sorted(SORT_KEYS), default=None,
                        help="Re-sort instead of tier/score ranking")
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--parlay", type=int, default=0, metavar="LEGS",
                        help="Build a parlay from the top N picks")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    parser.add_argument("--csv", type=str, help="Also write the picks to CSV")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        inputs = load_inputs(args)
    except (SweetSpotError, OSError) as e:
        logger.error(f"Could not load scoring inputs: {e}")
        return 1

    report = SweetSpotEngine().run(inputs)

    spots = filter_spots(
        report.spots,
        prop_type=PropType(args.prop) if args.prop else None,
        quality=QualityFilter(args.quality),
    )
    if args.sort:
        spots = sort_spots(spots, args.sort)
    if args.limit:
        spots = spots[:args.limit]

    if args.csv:
        spots_to_dataframe(spots).to_csv(args.csv, index=False)
        logger.info(f"Wrote {len(spots)} picks to {args.csv}")

    if args.json:
        summary = report.summary
        print(json.dumps({
            "spots": [s.to_dict() for s in spots],
            "summary": {
                "total_picks": summary.total_picks,
                "tier_counts": {t.value: n for t, n in summary.tier_counts.items()},
                "unique_teams": summary.unique_teams,
                "by_prop_type": {p.value: n for p, n in summary.by_prop_type.items()},
            },
        }, indent=2))
    else:
        print(format_report(report, spots))

    if args.parlay:
        slip = build_parlay(spots, max_legs=args.parlay)
        if slip.legs:
            print(f"\n  PARLAY: {len(slip.legs)}-Leg @ {slip.combined_american_odds:+d}")
            for leg in slip.legs:
                print(f"    {leg.description} ({leg.odds:+d}, L10 {leg.hit_rate:.0%})")
            print(f"  Naive prob: {slip.naive_probability:.1%} | EV/unit: {slip.expected_value:+.3f} "
                  f"| Units: {slip.recommended_units}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
