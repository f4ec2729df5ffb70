# tests/helpers.py

import html as html_lib
import itertools
from typing import Dict, List, Optional, Tuple

from h2h_scraper.database import match_key
from h2h_scraper.pacer import AdaptivePacer
from h2h_scraper.request_handler import FetchError

MATCH_TABLE_CLASS = 'table table-striped table-bordered table-condensed'


class FakeDatabase:
    """In-memory stand-in for DatabaseManager with the same method surface."""

    def __init__(self):
        self.players: Dict[int, dict] = {}
        self.seasons: Dict[str, str] = {}
        self.tournaments: Dict[int, dict] = {}
        self.matches: List[dict] = []
        self.queue: Dict[int, dict] = {}
        self.logs: List[dict] = []
        self.scraped: List[int] = []
        self._match_ids = itertools.count(1)
        self._queue_ids = itertools.count(1)
        self._clock = itertools.count(1)
        self.fail_insert_for: set = set()

    def init_schema(self):
        pass

    def close(self):
        pass

    # --- Entities ---

    def upsert_player(self, player_id, fields, placeholder=False):
        name = fields.get('name') or f"Player {player_id}"
        if player_id in self.players:
            if placeholder:
                return
            row = self.players[player_id]
            row['name'] = name
            for key, value in fields.items():
                if key != 'name' and value is not None:
                    row[key] = value
            return
        row = {k: v for k, v in fields.items() if v is not None}
        row.update({'id': player_id, 'name': name})
        self.players[player_id] = row

    def mark_player_scraped(self, player_id):
        self.scraped.append(player_id)

    def player_exists(self, player_id):
        return player_id in self.players

    def ensure_season(self, code, label):
        self.seasons.setdefault(code, label or code)

    def upsert_tournament(self, tournament_id, fields):
        existing = self.tournaments.get(tournament_id)
        if existing is None:
            self.tournaments[tournament_id] = dict(fields, id=tournament_id)
            return
        if fields.get('name'):
            existing['name'] = fields['name']
        if fields.get('date'):
            existing['date'] = fields['date']

    # --- Matches ---

    def match_exists(self, key):
        return any(match_key(m) == tuple(key) for m in self.matches)

    def insert_match(self, fields):
        if not fields.get('player1_id') or not fields.get('player2_id'):
            raise ValueError("Cannot insert match: missing player IDs")
        if not fields.get('tournament_id'):
            raise ValueError("Cannot insert match: missing tournament_id")
        if fields['tournament_id'] in self.fail_insert_for:
            raise RuntimeError(f"simulated write failure for tournament {fields['tournament_id']}")
        if self.match_exists(match_key(fields)):
            return False
        self.add_match_row(**fields)
        return True

    def add_match_row(self, **fields) -> int:
        """Store a row without the duplicate guard (for audit fixtures)"""
        row = {
            'round_order': None, 'player1_partner_id': None, 'player2_partner_id': None,
            'is_walkover': False, 'winner_certain': True, 'points_earned': 0,
            'match_type': 'singles', 'competition_type': 'individual', 'score': None,
        }
        row.update(fields)
        row.setdefault('winner_id', row.get('player1_id'))
        row['id'] = next(self._match_ids)
        self.matches.append(row)
        return row['id']

    # --- Scrape queue ---

    def get_queue_item(self, player_id):
        row = self.queue.get(player_id)
        return dict(row) if row else None

    def insert_queue_item(self, player_id, priority, depth, source_player_id):
        if player_id in self.queue:
            return False
        self.queue[player_id] = {
            'id': next(self._queue_ids), 'player_id': player_id, 'priority': priority,
            'status': 'pending', 'attempts': 0, 'depth': depth,
            'source_player_id': source_player_id, 'last_attempt_at': None,
            'error_message': None, 'created_at': next(self._clock),
        }
        return True

    def reset_queue_item(self, player_id, priority, depth, source_player_id):
        if self.insert_queue_item(player_id, priority, depth, source_player_id):
            return
        row = self.queue[player_id]
        row.update(status='pending', priority=priority, error_message=None,
                   depth=min(row['depth'], depth))

    def _ordered_queue(self):
        return sorted(self.queue.values(), key=lambda r: (-r['priority'], r['created_at'], r['id']))

    def next_pending_queue_item(self):
        for row in self._ordered_queue():
            if row['status'] == 'pending':
                return dict(row)
        return None

    def set_queue_processing(self, player_id):
        row = self.queue.get(player_id)
        if not row or row['status'] != 'pending':
            return False
        row.update(status='processing', attempts=row['attempts'] + 1,
                   last_attempt_at=next(self._clock))
        return True

    def set_queue_finished(self, player_id, status, error_message=None):
        row = self.queue.get(player_id)
        if not row or row['status'] != 'processing':
            return False
        row.update(status=status, error_message=error_message)
        return True

    def reset_queue_status(self, from_status):
        count = 0
        for row in self.queue.values():
            if row['status'] == from_status:
                row.update(status='pending', error_message=None)
                count += 1
        return count

    def clear_queue(self):
        count = len(self.queue)
        self.queue.clear()
        return count

    def list_queue_items(self, limit=None):
        rows = [dict(r) for r in self._ordered_queue()]
        return rows[:limit] if limit else rows

    def queue_counts(self, column):
        counts = {}
        for row in self.queue.values():
            counts[row[column]] = counts.get(row[column], 0) + 1
        return counts

    # --- Audit reads ---

    def get_player_name(self, player_id):
        row = self.players.get(player_id)
        return row['name'] if row else None

    def get_tournament_name(self, tournament_id):
        row = self.tournaments.get(tournament_id)
        return row.get('name') if row else None

    @staticmethod
    def _participants(m):
        ids = (m['player1_id'], m['player2_id'], m.get('player1_partner_id'), m.get('player2_partner_id'))
        return [pid for pid in ids if pid]

    def _involves(self, m, player_id):
        return player_id in self._participants(m)

    def get_player_tournament_matches(self, player_id, tournament_id):
        return [dict(m) for m in self.matches
                if m['tournament_id'] == tournament_id and self._involves(m, player_id)]

    def get_player_tournament_ids(self, player_id):
        return sorted({m['tournament_id'] for m in self.matches if self._involves(m, player_id)})

    def get_tournament_player_ids(self, tournament_id):
        ids = set()
        for m in self.matches:
            if m['tournament_id'] == tournament_id:
                ids.update(self._participants(m))
        return sorted(i for i in ids if i)

    def get_top_player_ids(self, limit=100):
        counts = {}
        for m in self.matches:
            for pid in self._participants(m):
                counts[pid] = counts.get(pid, 0) + 1
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return [pid for pid, _ in ranked[:limit]]

    def find_duplicate_match_groups(self):
        groups = {}
        for m in sorted(self.matches, key=lambda r: r['id']):
            groups.setdefault(match_key(m), []).append(m['id'])
        result = []
        for key, ids in groups.items():
            if len(ids) > 1:
                tournament_id, round_label, p1, p2, p1_partner, p2_partner, match_type = key
                result.append({
                    'tournament_id': tournament_id, 'round': round_label,
                    'player1_id': p1, 'player2_id': p2,
                    'player1_partner_id': p1_partner, 'player2_partner_id': p2_partner,
                    'match_type': match_type,
                    'count': len(ids), 'match_ids': ids,
                })
        return sorted(result, key=lambda g: -g['count'])

    def find_self_matches(self):
        return [{'id': m['id'], 'player1_id': m['player1_id']}
                for m in self.matches if m['player1_id'] == m['player2_id']]

    def delete_matches(self, match_ids):
        ids = set(match_ids)
        before = len(self.matches)
        self.matches = [m for m in self.matches if m['id'] not in ids]
        return before - len(self.matches)

    # --- Run bookkeeping ---

    def log_scrape_start(self):
        self.logs.append({'status': 'RUNNING'})
        return len(self.logs)

    def log_scrape_end(self, log_id, players_scraped, matches_saved, errors, success=True):
        self.logs[log_id - 1].update(
            status='COMPLETED' if success else 'FAILED',
            players_scraped=players_scraped,
            matches_saved=matches_saved,
            errors=list(errors),
        )


class FakeFetcher:
    """Serves canned profile/season pages; entries in `fail` raise instead."""

    def __init__(self, profiles: Dict[int, Tuple[dict, List[dict]]] = None,
                 seasons: Dict[Tuple[int, str], str] = None):
        self.profiles = profiles or {}
        self.seasons = seasons or {}
        self.fail_profiles: set = set()
        self.fail_seasons: set = set()
        self.calls: List[tuple] = []

    def fetch_profile(self, player_id):
        self.calls.append(('profile', player_id))
        if player_id in self.fail_profiles or player_id not in self.profiles:
            raise FetchError(f"HTTP 500 for /hrac/{player_id}", error_type='http', status=500)
        profile, seasons = self.profiles[player_id]
        return '<html></html>', dict(profile), list(seasons)

    def fetch_season(self, player_id, season_code):
        self.calls.append(('season', player_id, season_code))
        if (player_id, season_code) in self.fail_seasons:
            raise FetchError(f"Timeout for /hrac/{player_id}", error_type='timeout')
        return self.seasons.get((player_id, season_code), '<html></html>')


def instant_pacer() -> AdaptivePacer:
    """Pacer that never waits"""
    return AdaptivePacer(base_delay=0, min_delay=0, max_delay=0)


# --- HTML builders ---

def _side_html(participants: List[Tuple[int, str]]) -> str:
    return ' / '.join(f'<a href="/hrac/{pid}">{html_lib.escape(name)}</a>' for pid, name in participants)


def tournament_table(tournament_id: Optional[int], name: str, date_text: str, rows: List[tuple]) -> str:
    """
    One tournament block. Each row is
    (round, left participants, right participants, score[, points]).
    """
    href = f'/turnaj/{tournament_id}' if tournament_id else '/turnaje'
    body = []
    for row in rows:
        round_label, left, right, score = row[:4]
        body.append(
            f'<tr><td>{html_lib.escape(round_label)}</td><td>{_side_html(left)}</td><td>-</td>'
            f'<td>{_side_html(right)}</td><td>{html_lib.escape(score)}</td></tr>'
        )
        if len(row) > 4 and row[4] is not None:
            body.append(f'<tr><td colspan="5">získané body: {row[4]}</td></tr>')
    return (
        f'<table class="{MATCH_TABLE_CLASS}">'
        f'<thead><tr><th colspan="5"><a href="{href}"><h4>{html_lib.escape(name)}</h4> {date_text}</a>'
        f'</th></tr></thead>'
        f'<tbody>{"".join(body)}</tbody></table>'
    )


def season_page(sections: List[Tuple[str, List[str]]]) -> str:
    """Sections are (h3 label, [tournament_table html, ...])"""
    parts = ['<html><body><div class="container">']
    for label, tables in sections:
        parts.append(f'<h3>{html_lib.escape(label)}</h3>')
        parts.extend(tables)
    parts.append('</div></body></html>')
    return ''.join(parts)


def profile_page(name: str, birth_year: str = '2005', club: str = 'TK Sparta Praha',
                 valid_until: str = '31.12.2025', seasons: List[Tuple[str, str]] = None) -> str:
    seasons = seasons if seasons is not None else [('2024', '2024'), ('2023', '2023')]
    options = ''.join(f'<option value="{v}">{html_lib.escape(l)}</option>' for v, l in seasons)
    return (
        '<html><body>'
        f'<div class="row"><div class="span12"><h2>{html_lib.escape(name)}</h2></div></div>'
        '<table class="table table-bordered table-striped">'
        f'<tr><td>Rok narození:</td><td><strong>{birth_year}</strong></td></tr>'
        f'<tr><td>Klub:</td><td><strong>{html_lib.escape(club)}</strong></td></tr>'
        f'<tr><td>Platnost reg. do:</td><td><strong>{valid_until}</strong></td></tr>'
        '</table>'
        '<form method="post"><input type="hidden" name="volba" value="1">'
        f'<select name="sezona">{options}</select></form>'
        '</body></html>'
    )
