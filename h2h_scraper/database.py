# h2h_scraper/database.py

import logging
from typing import Dict, List, Optional, Tuple

import psycopg2
import psycopg2.extras

from h2h_scraper.config import DATABASE_URL

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS players (
    id                          BIGINT PRIMARY KEY,
    name                        TEXT NOT NULL,
    first_name                  TEXT,
    last_name                   TEXT,
    birth_year                  INTEGER,
    current_club                TEXT,
    registration_valid_until    DATE,
    last_scraped_at             TIMESTAMP,
    created_at                  TIMESTAMP DEFAULT NOW(),
    updated_at                  TIMESTAMP DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_players_name ON players (name);

CREATE TABLE IF NOT EXISTS seasons (
    id          SERIAL PRIMARY KEY,
    code        TEXT NOT NULL UNIQUE,
    label       TEXT NOT NULL,
    created_at  TIMESTAMP DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS tournaments (
    id          BIGINT PRIMARY KEY,
    name        TEXT,
    date        DATE,
    season_code TEXT REFERENCES seasons (code),
    created_at  TIMESTAMP DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_tournaments_date ON tournaments (date);

CREATE TABLE IF NOT EXISTS matches (
    id                  SERIAL PRIMARY KEY,
    tournament_id       BIGINT NOT NULL REFERENCES tournaments (id),
    match_type          TEXT NOT NULL,
    competition_type    TEXT NOT NULL,
    round               TEXT NOT NULL,
    round_order         INTEGER,
    player1_id          BIGINT NOT NULL REFERENCES players (id),
    player2_id          BIGINT NOT NULL REFERENCES players (id),
    player1_partner_id  BIGINT REFERENCES players (id),
    player2_partner_id  BIGINT REFERENCES players (id),
    score               TEXT,
    is_walkover         BOOLEAN DEFAULT FALSE,
    winner_id           BIGINT REFERENCES players (id),
    winner_certain      BOOLEAN DEFAULT TRUE,
    points_earned       INTEGER,
    match_date          DATE,
    created_at          TIMESTAMP DEFAULT NOW()
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_matches_key ON matches (
    tournament_id, round, player1_id, player2_id,
    (COALESCE(player1_partner_id, 0)), (COALESCE(player2_partner_id, 0)), match_type
);
CREATE INDEX IF NOT EXISTS idx_matches_player1 ON matches (player1_id);
CREATE INDEX IF NOT EXISTS idx_matches_player2 ON matches (player2_id);
CREATE INDEX IF NOT EXISTS idx_matches_partner1 ON matches (player1_partner_id);
CREATE INDEX IF NOT EXISTS idx_matches_partner2 ON matches (player2_partner_id);

CREATE TABLE IF NOT EXISTS scrape_queue (
    id                  SERIAL PRIMARY KEY,
    player_id           BIGINT NOT NULL UNIQUE,
    priority            INTEGER DEFAULT 0,
    status              TEXT DEFAULT 'pending',
    attempts            INTEGER DEFAULT 0,
    depth               INTEGER NOT NULL DEFAULT 0,
    source_player_id    BIGINT,
    last_attempt_at     TIMESTAMP,
    error_message       TEXT,
    created_at          TIMESTAMP DEFAULT clock_timestamp()
);
CREATE INDEX IF NOT EXISTS idx_queue_status ON scrape_queue (status, priority);

CREATE TABLE IF NOT EXISTS scrape_logs (
    id                  SERIAL PRIMARY KEY,
    status              TEXT NOT NULL,
    started_at          TIMESTAMP DEFAULT NOW(),
    completed_at        TIMESTAMP,
    players_scraped     INTEGER DEFAULT 0,
    matches_saved       INTEGER DEFAULT 0,
    errors              TEXT[]
);
"""

MATCH_COLUMNS = [
    'tournament_id', 'match_type', 'competition_type', 'round', 'round_order',
    'player1_id', 'player2_id', 'player1_partner_id', 'player2_partner_id',
    'score', 'is_walkover', 'winner_id', 'winner_certain', 'points_earned', 'match_date',
]

PARTICIPANT_FILTER = ("(player1_id = %s OR player2_id = %s "
                      "OR player1_partner_id = %s OR player2_partner_id = %s)")


def match_key(fields: dict) -> Tuple:
    """Duplicate key of a stored match: both full sides, winners first"""
    return (fields['tournament_id'], fields['round'], fields['player1_id'],
            fields['player2_id'], fields.get('player1_partner_id'),
            fields.get('player2_partner_id'), fields['match_type'])


class DatabaseManager:
    """Handles all PostgreSQL operations for the crawler: entities, matches, queue and audit reads."""

    def __init__(self, database_url: str = None):
        self.database_url = database_url or DATABASE_URL
        self.conn = None

    def _get_conn(self):
        if self.conn is None or self.conn.closed:
            self.conn = psycopg2.connect(self.database_url)
        return self.conn

    def _cursor(self):
        return self._get_conn().cursor(cursor_factory=psycopg2.extras.RealDictCursor)

    def _execute(self, sql: str, params=None) -> int:
        """Run a write statement in its own transaction; returns rowcount."""
        conn = self._get_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rowcount = cur.rowcount
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
        return rowcount

    def _fetchall(self, sql: str, params=None) -> List[dict]:
        conn = self._get_conn()
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
                rows = [dict(r) for r in cur.fetchall()]
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
        return rows

    def _fetchone(self, sql: str, params=None) -> Optional[dict]:
        rows = self._fetchall(sql, params)
        return rows[0] if rows else None

    def close(self):
        if self.conn and not self.conn.closed:
            self.conn.close()

    def init_schema(self):
        self._execute(SCHEMA)
        logger.info("Database schema ready")

    # --- Entities ---

    def upsert_player(self, player_id: int, fields: dict, placeholder: bool = False):
        """Insert or update a player. Placeholders never overwrite an existing row."""
        name = fields.get('name') or f"Player {player_id}"
        params = (player_id, name, fields.get('first_name'), fields.get('last_name'),
                  fields.get('birth_year'), fields.get('current_club'),
                  fields.get('registration_valid_until'))
        if placeholder:
            self._execute("""
                INSERT INTO players (id, name, first_name, last_name, birth_year,
                    current_club, registration_valid_until)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (id) DO NOTHING
            """, params)
            return

        self._execute("""
            INSERT INTO players (id, name, first_name, last_name, birth_year,
                current_club, registration_valid_until)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                name = EXCLUDED.name,
                first_name = COALESCE(EXCLUDED.first_name, players.first_name),
                last_name = COALESCE(EXCLUDED.last_name, players.last_name),
                birth_year = COALESCE(EXCLUDED.birth_year, players.birth_year),
                current_club = COALESCE(EXCLUDED.current_club, players.current_club),
                registration_valid_until = COALESCE(EXCLUDED.registration_valid_until,
                                                    players.registration_valid_until),
                updated_at = NOW()
        """, params)

    def mark_player_scraped(self, player_id: int):
        self._execute("UPDATE players SET last_scraped_at = NOW() WHERE id = %s", (player_id,))

    def player_exists(self, player_id: int) -> bool:
        return self._fetchone("SELECT 1 AS found FROM players WHERE id = %s", (player_id,)) is not None

    def ensure_season(self, code: str, label: str):
        self._execute("""
            INSERT INTO seasons (code, label) VALUES (%s, %s)
            ON CONFLICT (code) DO NOTHING
        """, (code, label or code))

    def upsert_tournament(self, tournament_id: int, fields: dict):
        """Upsert a tournament; the season it was first seen in is kept"""
        self._execute("""
            INSERT INTO tournaments (id, name, date, season_code)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                name = COALESCE(NULLIF(EXCLUDED.name, ''), tournaments.name),
                date = COALESCE(EXCLUDED.date, tournaments.date)
        """, (tournament_id, fields.get('name'), fields.get('date'), fields.get('season_code')))

    # --- Matches ---

    def match_exists(self, key: Tuple) -> bool:
        row = self._fetchone("""
            SELECT 1 AS found FROM matches
            WHERE tournament_id = %s AND round = %s AND player1_id = %s
              AND player2_id = %s
              AND player1_partner_id IS NOT DISTINCT FROM %s
              AND player2_partner_id IS NOT DISTINCT FROM %s
              AND match_type = %s
        """, key)
        return row is not None

    def insert_match(self, fields: dict) -> bool:
        """Insert a match. Returns False when an equivalent match is already stored."""
        if not fields.get('player1_id') or not fields.get('player2_id'):
            raise ValueError(f"Cannot insert match: missing player IDs "
                             f"({fields.get('player1_id')}, {fields.get('player2_id')})")
        if not fields.get('tournament_id'):
            raise ValueError("Cannot insert match: missing tournament_id")

        if self.match_exists(match_key(fields)):
            return False

        placeholders = ', '.join(['%s'] * len(MATCH_COLUMNS))
        rowcount = self._execute(
            f"INSERT INTO matches ({', '.join(MATCH_COLUMNS)}) VALUES ({placeholders}) "
            "ON CONFLICT DO NOTHING",
            [fields.get(c) for c in MATCH_COLUMNS]
        )
        return rowcount > 0

    # --- Scrape queue ---

    def get_queue_item(self, player_id: int) -> Optional[dict]:
        return self._fetchone("SELECT * FROM scrape_queue WHERE player_id = %s", (player_id,))

    def insert_queue_item(self, player_id: int, priority: int, depth: int,
                          source_player_id: Optional[int]) -> bool:
        rowcount = self._execute("""
            INSERT INTO scrape_queue (player_id, priority, status, depth, source_player_id)
            VALUES (%s, %s, 'pending', %s, %s)
            ON CONFLICT (player_id) DO NOTHING
        """, (player_id, priority, depth, source_player_id))
        return rowcount > 0

    def reset_queue_item(self, player_id: int, priority: int, depth: int,
                         source_player_id: Optional[int]):
        """Force an item (new or existing) back to pending"""
        self._execute("""
            INSERT INTO scrape_queue (player_id, priority, status, depth, source_player_id)
            VALUES (%s, %s, 'pending', %s, %s)
            ON CONFLICT (player_id) DO UPDATE SET
                status = 'pending',
                priority = EXCLUDED.priority,
                depth = LEAST(scrape_queue.depth, EXCLUDED.depth),
                error_message = NULL
        """, (player_id, priority, depth, source_player_id))

    def next_pending_queue_item(self) -> Optional[dict]:
        return self._fetchone("""
            SELECT * FROM scrape_queue
            WHERE status = 'pending'
            ORDER BY priority DESC, created_at ASC, id ASC
            LIMIT 1
        """)

    def set_queue_processing(self, player_id: int) -> bool:
        """Claim a pending item: status, attempt count and timestamp in one statement"""
        rowcount = self._execute("""
            UPDATE scrape_queue SET
                status = 'processing',
                attempts = attempts + 1,
                last_attempt_at = NOW()
            WHERE player_id = %s AND status = 'pending'
        """, (player_id,))
        return rowcount > 0

    def set_queue_finished(self, player_id: int, status: str, error_message: str = None) -> bool:
        rowcount = self._execute("""
            UPDATE scrape_queue SET status = %s, error_message = %s
            WHERE player_id = %s AND status = 'processing'
        """, (status, error_message, player_id))
        return rowcount > 0

    def reset_queue_status(self, from_status: str) -> int:
        return self._execute("""
            UPDATE scrape_queue SET status = 'pending', error_message = NULL
            WHERE status = %s
        """, (from_status,))

    def clear_queue(self) -> int:
        return self._execute("DELETE FROM scrape_queue")

    def list_queue_items(self, limit: int = None) -> List[dict]:
        sql = "SELECT * FROM scrape_queue ORDER BY priority DESC, created_at ASC, id ASC"
        if limit:
            return self._fetchall(sql + " LIMIT %s", (limit,))
        return self._fetchall(sql)

    def queue_counts(self, column: str) -> Dict:
        if column not in ('status', 'depth'):
            raise ValueError(f"Cannot group queue by {column}")
        rows = self._fetchall(
            f"SELECT {column} AS grp, COUNT(*) AS n FROM scrape_queue GROUP BY {column}")
        return {r['grp']: r['n'] for r in rows}

    # --- Audit reads ---

    def get_player_name(self, player_id: int) -> Optional[str]:
        row = self._fetchone("SELECT name FROM players WHERE id = %s", (player_id,))
        return row['name'] if row else None

    def get_tournament_name(self, tournament_id: int) -> Optional[str]:
        row = self._fetchone("SELECT name FROM tournaments WHERE id = %s", (tournament_id,))
        return row['name'] if row else None

    def get_player_tournament_matches(self, player_id: int, tournament_id: int) -> List[dict]:
        """Matches the player took part in on either side, as lead or partner"""
        return self._fetchall(f"""
            SELECT * FROM matches
            WHERE tournament_id = %s AND {PARTICIPANT_FILTER}
            ORDER BY id
        """, (tournament_id,) + (player_id,) * 4)

    def get_player_tournament_ids(self, player_id: int) -> List[int]:
        rows = self._fetchall(f"""
            SELECT DISTINCT tournament_id FROM matches
            WHERE {PARTICIPANT_FILTER}
            ORDER BY tournament_id
        """, (player_id,) * 4)
        return [r['tournament_id'] for r in rows]

    def get_tournament_player_ids(self, tournament_id: int) -> List[int]:
        rows = self._fetchall("""
            SELECT pid FROM matches,
                LATERAL unnest(ARRAY[player1_id, player2_id,
                                     player1_partner_id, player2_partner_id]) AS pid
            WHERE tournament_id = %s AND pid IS NOT NULL
            GROUP BY pid
            ORDER BY pid
        """, (tournament_id,))
        return [r['pid'] for r in rows if r['pid']]

    def get_top_player_ids(self, limit: int = 100) -> List[int]:
        """Players with the most stored matches"""
        rows = self._fetchall("""
            SELECT pid, COUNT(*) AS n FROM matches,
                LATERAL unnest(ARRAY[player1_id, player2_id,
                                     player1_partner_id, player2_partner_id]) AS pid
            WHERE pid IS NOT NULL
            GROUP BY pid
            ORDER BY n DESC, pid
            LIMIT %s
        """, (limit,))
        return [r['pid'] for r in rows]

    def find_duplicate_match_groups(self) -> List[dict]:
        return self._fetchall("""
            SELECT tournament_id, round, player1_id, player2_id,
                   player1_partner_id, player2_partner_id, match_type,
                   COUNT(*) AS count, array_agg(id ORDER BY id) AS match_ids
            FROM matches
            GROUP BY tournament_id, round, player1_id, player2_id,
                     player1_partner_id, player2_partner_id, match_type
            HAVING COUNT(*) > 1
            ORDER BY COUNT(*) DESC
        """)

    def find_self_matches(self) -> List[dict]:
        return self._fetchall("SELECT id, player1_id FROM matches WHERE player1_id = player2_id")

    def delete_matches(self, match_ids: List[int]) -> int:
        if not match_ids:
            return 0
        return self._execute("DELETE FROM matches WHERE id = ANY(%s)", (list(match_ids),))

    # --- Run bookkeeping ---

    def log_scrape_start(self) -> int:
        """Log the start of a crawl run"""
        row = self._fetchone("""
            INSERT INTO scrape_logs (status, started_at) VALUES ('RUNNING', NOW())
            RETURNING id
        """)
        return row['id']

    def log_scrape_end(self, log_id: int, players_scraped: int, matches_saved: int,
                       errors: list, success: bool = True):
        """Log the end of a crawl run"""
        self._execute("""
            UPDATE scrape_logs SET
                status = %s,
                completed_at = NOW(),
                players_scraped = %s,
                matches_saved = %s,
                errors = %s
            WHERE id = %s
        """, ('COMPLETED' if success else 'FAILED', players_scraped, matches_saved, errors, log_id))
