# h2h_scraper/parsers/match_parser.py

import re
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from h2h_scraper.models import MatchSide, Participant, ParsedMatch, Side
from h2h_scraper.parsers.score_parser import parse_score

logger = logging.getLogger(__name__)

TOURNAMENT_HREF = re.compile(r'/turnaj/(\d+)')
PLAYER_HREF = re.compile(r'/hrac/(\d+)')
HEADER_DATE = re.compile(r'(\d{1,2})\.(\d{1,2})\.(\d{4})')
POINTS = re.compile(r'získané body:\s*(\d+)')

MATCH_TABLE_SELECTOR = 'table.table-striped.table-bordered.table-condensed'


class MatchParser:
    """
    Parser for the season match listing on a cztenis player profile.

    Page layout: an H3 section label (singles/doubles, individual/team),
    then one table per tournament. The table header links to the tournament
    and carries its name and date; each body row is
    round | left side | separator | right side | score.
    """

    def parse_matches(self, html: str, subject_id: int) -> List[ParsedMatch]:
        """Extract every match the subject player appears in"""
        soup = BeautifulSoup(html, 'html.parser')
        matches = []

        for table in soup.select(MATCH_TABLE_SELECTOR):
            header = self._parse_tournament_header(table)
            if header is None:
                continue

            match_type, competition_type = self._classify_section(table)
            block = self._parse_rows(table, subject_id, header, match_type, competition_type)
            if not block:
                logger.debug(f"Tournament {header['id']}: no rows for player {subject_id}, skipping block")
                continue
            matches.extend(block)

        return matches

    def _parse_tournament_header(self, table) -> Optional[Dict]:
        link = table.select_one('thead tr th a')
        if link is None:
            return None

        m = TOURNAMENT_HREF.search(link.get('href', ''))
        if not m:
            return None
        tournament_id = int(m.group(1))

        name_tag = link.find('h4')
        name = name_tag.get_text(' ', strip=True) if name_tag else ''

        return {
            'id': tournament_id,
            'name': re.sub(r'\s+', ' ', name),
            'date': self._parse_header_date(link.get_text(' ', strip=True), tournament_id),
        }

    def _parse_header_date(self, text: str, tournament_id: int) -> date:
        """Best-effort date; falls back to today"""
        m = HEADER_DATE.search(text or '')
        if not m:
            logger.warning(f"No date found in header of tournament {tournament_id}, using current date")
            return date.today()

        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if not (2000 <= year <= 2100):
            logger.warning(f"Invalid date components '{m.group(0)}' for tournament {tournament_id}, "
                           f"using current date")
            return date.today()
        try:
            return date(year, month, day)
        except ValueError:
            logger.warning(f"Invalid date components '{m.group(0)}' for tournament {tournament_id}, "
                           f"using current date")
            return date.today()

    def _classify_section(self, table) -> Tuple[str, str]:
        heading = table.find_previous('h3')
        label = heading.get_text(' ', strip=True).lower() if heading else ''
        competition_type = 'team' if 'družstva' in label else 'individual'
        match_type = 'doubles' if 'čtyřhra' in label else 'singles'
        return match_type, competition_type

    def _extract_side(self, cell, side: Side) -> MatchSide:
        participants = []
        for link in cell.find_all('a'):
            m = PLAYER_HREF.search(link.get('href', ''))
            if not m:
                continue
            name = re.sub(r'\s+', ' ', link.get_text(' ', strip=True))
            participants.append(Participant(id=int(m.group(1)), name=name))
        return MatchSide(side=side, participants=participants)

    def _points_for_row(self, row) -> int:
        next_row = row.find_next_sibling('tr')
        if next_row is None:
            return 0
        m = POINTS.search(next_row.get_text(' ', strip=True))
        return int(m.group(1)) if m else 0

    def _parse_rows(self, table, subject_id: int, header: Dict,
                    match_type: str, competition_type: str) -> List[ParsedMatch]:
        body = table.find('tbody') or table
        matches = []

        for row in body.find_all('tr', recursive=False):
            cols = row.find_all('td', recursive=False)
            if len(cols) == 1 and 'získané body' in cols[0].get_text():
                continue
            if len(cols) < 5:
                continue

            sides = {
                Side.LEFT: self._extract_side(cols[1], Side.LEFT),
                Side.RIGHT: self._extract_side(cols[3], Side.RIGHT),
            }
            subject_side = self._find_subject_side(sides, subject_id)
            if subject_side is None:
                # row misattributed to this profile
                continue

            match = self._build_match(
                sides, subject_side, subject_id,
                round_label=cols[0].get_text(' ', strip=True),
                score_text=cols[4].get_text(' ', strip=True),
                header=header,
                match_type=match_type,
                competition_type=competition_type,
            )
            match.points_earned = self._points_for_row(row)
            matches.append(match)

        return matches

    @staticmethod
    def _find_subject_side(sides: Dict[Side, MatchSide], subject_id: int) -> Optional[Side]:
        for side, match_side in sides.items():
            if match_side.contains(subject_id):
                return side
        return None

    def _build_match(self, sides: Dict[Side, MatchSide], subject_side: Side, subject_id: int,
                     round_label: str, score_text: str, header: Dict,
                     match_type: str, competition_type: str) -> ParsedMatch:
        score = parse_score(score_text)
        is_winner, winner_certain = score.subject_won(subject_side)

        own = sides[subject_side]
        opposing = sides[subject_side.other].participants

        match = ParsedMatch(
            tournament_id=header['id'],
            tournament_name=header['name'],
            tournament_date=header['date'],
            match_type=match_type,
            competition_type=competition_type,
            round=round_label,
            score=score.full_score,
            is_walkover=score.is_walkover,
            is_winner=is_winner,
            winner_certain=winner_certain,
            sets=[s.text for s in score.sets],
        )

        if opposing:
            match.opponent_id = opposing[0].id
            match.opponent_name = opposing[0].name

        if match_type == 'doubles':
            partner = own.teammate_of(subject_id)
            if partner:
                match.partner_id = partner.id
                match.partner_name = partner.name
            if len(opposing) > 1:
                match.opponent_partner_id = opposing[1].id
                match.opponent_partner_name = opposing[1].name

        return match
