# fpl_mcp/data/store.py
"""
DuckDB relational store for synchronized FPL data.

Every write is an idempotent upsert keyed on the table's primary key, so a
sync run can be replayed without creating duplicates. DuckDB calls are
blocking and run in worker threads, one cursor per call.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from fpl_mcp.api.errors import PersistenceError

logger = logging.getLogger(__name__)


# ============================================================================
# SCHEMA
# ============================================================================

SCHEMA = {
    "teams": """
        CREATE TABLE IF NOT EXISTS teams (
            id INTEGER PRIMARY KEY,
            name VARCHAR,
            short_name VARCHAR,
            last_updated VARCHAR
        )
    """,
    "players": """
        CREATE TABLE IF NOT EXISTS players (
            id INTEGER PRIMARY KEY,
            web_name VARCHAR,
            full_name VARCHAR,
            team_id INTEGER,
            position VARCHAR,
            last_updated VARCHAR
        )
    """,
    "gameweeks": """
        CREATE TABLE IF NOT EXISTS gameweeks (
            id INTEGER PRIMARY KEY,
            name VARCHAR,
            deadline_time VARCHAR,
            is_current BOOLEAN,
            is_next BOOLEAN,
            finished BOOLEAN,
            last_updated VARCHAR
        )
    """,
    "fixtures": """
        CREATE TABLE IF NOT EXISTS fixtures (
            id INTEGER PRIMARY KEY,
            gameweek_id INTEGER,
            home_team_id INTEGER,
            away_team_id INTEGER,
            kickoff_time VARCHAR,
            finished BOOLEAN,
            team_h_score INTEGER,
            team_a_score INTEGER,
            last_updated VARCHAR
        )
    """,
    "player_gameweek_stats": """
        CREATE TABLE IF NOT EXISTS player_gameweek_stats (
            player_id INTEGER,
            gameweek_id INTEGER,
            minutes INTEGER,
            goals_scored INTEGER,
            assists INTEGER,
            clean_sheets INTEGER,
            goals_conceded INTEGER,
            own_goals INTEGER,
            penalties_saved INTEGER,
            penalties_missed INTEGER,
            yellow_cards INTEGER,
            red_cards INTEGER,
            saves INTEGER,
            bonus INTEGER,
            total_points INTEGER,
            created_at VARCHAR,
            PRIMARY KEY (player_id, gameweek_id)
        )
    """,
}


class FPLDatabase:
    """
    Relational store backed by a DuckDB file (or ":memory:").

    Example:
        >>> db = FPLDatabase(":memory:")
        >>> await db.upsert("teams", [{"id": 1, "name": "Arsenal"}], ["id"])
        1
    """

    def __init__(self, path: str = "fpl_data.duckdb"):
        self.path = path
        self._lock = threading.Lock()
        try:
            self.conn = duckdb.connect(path)
            for ddl in SCHEMA.values():
                self.conn.execute(ddl)
        except duckdb.Error as e:
            raise PersistenceError("schema", e) from e
        logger.info(f"DuckDB store ready at {path}")

    def _upsert_sync(
        self, table: str, records: List[Dict[str, Any]], conflict_key: Sequence[str]
    ) -> int:
        columns = list(records[0].keys())
        placeholders = ", ".join("?" for _ in columns)
        updates = [c for c in columns if c not in conflict_key]
        if updates:
            action = "DO UPDATE SET " + ", ".join(f"{c} = EXCLUDED.{c}" for c in updates)
        else:
            action = "DO NOTHING"
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(conflict_key)}) {action}"
        )
        rows = [[record.get(c) for c in columns] for record in records]
        with self._lock:
            cursor = self.conn.cursor()
            try:
                cursor.executemany(sql, rows)
            finally:
                cursor.close()
        return len(rows)

    async def upsert(
        self, table: str, records: List[Dict[str, Any]], conflict_key: Sequence[str]
    ) -> int:
        """
        Insert records, updating the supplied columns of rows that already exist.

        Args:
            table: Target table
            records: Rows sharing the same set of columns
            conflict_key: Primary key column(s) that identify an existing row

        Returns:
            Number of rows written

        Raises:
            PersistenceError: Unknown table, empty key, or a DuckDB failure
        """
        if table not in SCHEMA:
            raise PersistenceError(table, "unknown table")
        if not conflict_key:
            raise PersistenceError(table, "conflict key is required")
        if not records:
            return 0
        try:
            return await asyncio.to_thread(self._upsert_sync, table, records, conflict_key)
        except duckdb.Error as e:
            raise PersistenceError(table, e) from e

    def _fetch_sync(self, sql: str, params: List[Any]) -> List[Dict[str, Any]]:
        with self._lock:
            cursor = self.conn.cursor()
            try:
                cursor.execute(sql, params)
                names = [d[0] for d in cursor.description]
                return [dict(zip(names, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

    async def fetch_all(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._fetch_sync, sql, params or [])
        except duckdb.Error as e:
            raise PersistenceError("query", e) from e

    async def get_player_gameweek_stats(
        self, player_id: int, gameweek_id: int
    ) -> Optional[Dict[str, Any]]:
        rows = await self.fetch_all(
            "SELECT * FROM player_gameweek_stats WHERE player_id = ? AND gameweek_id = ?",
            [player_id, gameweek_id],
        )
        return rows[0] if rows else None

    async def count(self, table: str) -> int:
        if table not in SCHEMA:
            raise PersistenceError(table, "unknown table")
        rows = await self.fetch_all(f"SELECT COUNT(*) AS n FROM {table}")
        return int(rows[0]["n"])

    def close(self):
        with self._lock:
            self.conn.close()
