#!/usr/bin/env python3
"""
SQLite Snapshot Cache for the Sweet Spot Engine

Caches:
- Prop snapshots (5min TTL - live lines; newer snapshots supersede older ones)
- Game logs (permanent - historical data doesn't change)
- Matchup history (24hr TTL)
"""

import sqlite3
import json
import os
import time
from collections import defaultdict
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

DB_PATH = os.getenv("SWEETSPOT_CACHE_DB", os.path.join(os.path.dirname(__file__), "sweetspots_cache.db"))

# TTL in seconds
TTL_PROPS = 5 * 60             # 5 minutes (live data)
TTL_MATCHUPS = 24 * 60 * 60    # 24 hours

TABLES = ["prop_snapshots", "game_logs", "matchup_history"]


class CacheDB:
    """SQLite cache for prop store responses"""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        """Initialize database tables"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        # One snapshot (all quoted lines) per player/prop/date
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS prop_snapshots (
                player_name TEXT,
                prop_type TEXT,
                game_date TEXT,
                data TEXT,
                snapshot_time REAL,
                updated_at REAL,
                PRIMARY KEY (player_name, prop_type, game_date)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS game_logs (
                player_name TEXT,
                game_date TEXT,
                data TEXT,
                updated_at REAL,
                PRIMARY KEY (player_name, game_date)
            )
        """)

        # prop_type is '' for records that cover every stat
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS matchup_history (
                player_name TEXT,
                opponent TEXT,
                prop_type TEXT,
                data TEXT,
                updated_at REAL,
                PRIMARY KEY (player_name, opponent, prop_type)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_props_date ON prop_snapshots(game_date)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_game_logs_date ON game_logs(game_date)")

        conn.commit()
        conn.close()

    def _is_expired(self, updated_at: float, ttl: int) -> bool:
        """Check if cache entry is expired"""
        if updated_at is None:
            return True
        return (time.time() - updated_at) > ttl

    # -------------------------------------------------------------------------
    # Prop Snapshot Methods
    # -------------------------------------------------------------------------

    def save_props(self, game_date: str, rows: List[Dict], snapshot_time: float = None):
        """
        Cache a market snapshot for a date.

        Rows are grouped per player/prop; each group replaces the stored
        snapshot for that key unless the stored one is newer.
        """
        snapshot_time = snapshot_time if snapshot_time is not None else time.time()
        groups: Dict[tuple, List[Dict]] = defaultdict(list)
        for row in rows:
            groups[(row.get("player_name"), row.get("prop_type"))].append(row)

        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        now = time.time()
        skipped = 0

        for (player_name, prop_type), group in groups.items():
            cursor.execute("""
                INSERT INTO prop_snapshots (player_name, prop_type, game_date, data, snapshot_time, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(player_name, prop_type, game_date) DO UPDATE SET
                    data = excluded.data,
                    snapshot_time = excluded.snapshot_time,
                    updated_at = excluded.updated_at
                WHERE excluded.snapshot_time >= prop_snapshots.snapshot_time
            """, (player_name, prop_type, game_date, json.dumps(group), snapshot_time, now))
            if cursor.rowcount == 0:
                skipped += 1

        conn.commit()
        conn.close()

        if skipped:
            logger.debug(f"Kept {skipped} newer cached snapshots for {game_date}")

    def get_props(self, game_date: str) -> Optional[List[Dict]]:
        """Get fresh cached lines for a date (None when nothing fresh is cached)"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute("""
            SELECT data, updated_at FROM prop_snapshots
            WHERE game_date = ?
            ORDER BY player_name, prop_type
        """, (game_date,))
        rows = cursor.fetchall()
        conn.close()

        props = []
        for data, updated_at in rows:
            if not self._is_expired(updated_at, TTL_PROPS):
                props.extend(json.loads(data))

        return props or None

    # -------------------------------------------------------------------------
    # Game Log Methods
    # -------------------------------------------------------------------------

    def save_game_logs(self, rows: List[Dict]):
        """Cache game log rows"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        now = time.time()

        for row in rows:
            cursor.execute("""
                INSERT OR REPLACE INTO game_logs (player_name, game_date, data, updated_at)
                VALUES (?, ?, ?, ?)
            """, (row.get("player_name"), str(row.get("game_date")), json.dumps(row), now))

        conn.commit()
        conn.close()

    def get_game_logs(self, player_names: List[str], limit: int = 15) -> List[Dict]:
        """Get cached game logs for players, newest first"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        logs = []
        for player_name in player_names:
            cursor.execute("""
                SELECT data FROM game_logs
                WHERE player_name = ?
                ORDER BY game_date DESC
                LIMIT ?
            """, (player_name, limit))
            logs.extend(json.loads(row[0]) for row in cursor.fetchall())

        conn.close()
        return logs

    # -------------------------------------------------------------------------
    # Matchup Methods
    # -------------------------------------------------------------------------

    def save_matchups(self, rows: List[Dict]):
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        now = time.time()

        for row in rows:
            cursor.execute("""
                INSERT OR REPLACE INTO matchup_history (player_name, opponent, prop_type, data, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (row.get("player_name"), row.get("opponent"), row.get("prop_type") or "", json.dumps(row), now))

        conn.commit()
        conn.close()

    def get_matchups(self, player_names: List[str]) -> List[Dict]:
        """Get fresh cached matchup records for players"""
        if not player_names:
            return []

        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        placeholders = ",".join("?" for _ in player_names)
        cursor.execute(
            f"SELECT data, updated_at FROM matchup_history WHERE player_name IN ({placeholders})",
            player_names
        )
        rows = cursor.fetchall()
        conn.close()

        return [json.loads(data) for data, updated_at in rows if not self._is_expired(updated_at, TTL_MATCHUPS)]

    # -------------------------------------------------------------------------
    # Utility Methods
    # -------------------------------------------------------------------------

    def clear_expired(self):
        """Clear all expired entries"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        now = time.time()

        cursor.execute("DELETE FROM prop_snapshots WHERE ? - updated_at > ?", (now, TTL_PROPS))
        cursor.execute("DELETE FROM matchup_history WHERE ? - updated_at > ?", (now, TTL_MATCHUPS))

        # Game logs are permanent, don't clear

        conn.commit()
        conn.close()

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        stats = {}
        for table in TABLES:
            cursor.execute(f"SELECT COUNT(*) FROM {table}")
            stats[table] = cursor.fetchone()[0]

        conn.close()
        return stats

    def clear_all(self):
        """Clear all cache data"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        for table in TABLES:
            cursor.execute(f"DELETE FROM {table}")
        conn.commit()
        conn.close()


# Global cache instance
_cache = None


def get_cache() -> CacheDB:
    """Get global cache instance"""
    global _cache
    if _cache is None:
        _cache = CacheDB()
    return _cache
