# tests/test_match_parser.py

import logging
from datetime import date

import pytest

from h2h_scraper.parsers.match_parser import MatchParser
from tests.helpers import season_page, tournament_table

SUBJECT = 1026900
OPPONENT = 1013801
PARTNER = 1011111
OPP_PARTNER = 1022222


@pytest.fixture
def parser():
    return MatchParser()


class TestSingles:

    def test_subject_on_left_wins(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '12.5.2023', [
                ('32>16', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4', 25),
            ]),
        ])])

        matches = parser.parse_matches(html, SUBJECT)

        assert len(matches) == 1
        m = matches[0]
        assert m.tournament_id == 555
        assert m.tournament_name == 'Turnaj Praha'
        assert m.tournament_date == date(2023, 5, 12)
        assert m.match_type == 'singles'
        assert m.competition_type == 'individual'
        assert m.round == '32>16'
        assert m.opponent_id == OPPONENT
        assert m.opponent_name == 'Menšík Jakub'
        assert m.score == '6:3, 6:4'
        assert m.is_winner is True
        assert m.winner_certain is True
        assert m.points_earned == 25
        assert m.partner_id is None

    def test_subject_on_right_loses(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '12.5.2023', [
                ('16>8', [(OPPONENT, 'Menšík Jakub')], [(SUBJECT, 'Kumstát Jan')], '4:6, 7:6 (5), 6:3'),
            ]),
        ])])

        m = parser.parse_matches(html, SUBJECT)[0]
        assert m.opponent_id == OPPONENT
        assert m.is_winner is False
        assert m.points_earned == 0
        assert m.sets == ['4:6', '7:6 (5)', '6:3']

    def test_rows_without_subject_are_skipped(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '12.5.2023', [
                ('32>16', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4'),
                ('32>16', [(1000001, 'Někdo Jiný')], [(1000002, 'Další Hráč')], '6:0, 6:0'),
            ]),
        ])])

        matches = parser.parse_matches(html, SUBJECT)
        assert [m.opponent_id for m in matches] == [OPPONENT]

    def test_walkover(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '12.5.2023', [
                ('8>4', [(OPPONENT, 'Menšík Jakub')], [(SUBJECT, 'Kumstát Jan')], 'scr.'),
            ]),
        ])])

        m = parser.parse_matches(html, SUBJECT)[0]
        assert m.is_walkover is True
        assert m.winner_certain is False
        assert m.is_winner is False  # positional default: left side

    def test_walkover_without_opponent(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '12.5.2023', [
                ('8>4', [(SUBJECT, 'Kumstát Jan')], [], 'w.o.'),
            ]),
        ])])

        m = parser.parse_matches(html, SUBJECT)[0]
        assert m.opponent_id is None
        assert m.is_walkover is True


class TestSections:

    def test_doubles_roles(self, parser):
        html = season_page([('Jednotlivci - čtyřhra', [
            tournament_table(556, 'Turnaj Brno', '1.6.2023', [
                ('16>8',
                 [(PARTNER, 'Partner Petr'), (SUBJECT, 'Kumstát Jan')],
                 [(OPPONENT, 'Menšík Jakub'), (OPP_PARTNER, 'Soupeř Pavel')],
                 '6:4, 6:4'),
            ]),
        ])])

        m = parser.parse_matches(html, SUBJECT)[0]
        assert m.match_type == 'doubles'
        assert m.competition_type == 'individual'
        assert m.partner_id == PARTNER
        assert m.partner_name == 'Partner Petr'
        assert m.opponent_id == OPPONENT
        assert m.opponent_partner_id == OPP_PARTNER
        assert m.is_winner is True
        assert set(m.participant_ids()) == {PARTNER, OPPONENT, OPP_PARTNER}

    def test_team_competition(self, parser):
        html = season_page([('Družstva - dvouhra', [
            tournament_table(557, 'Extraliga', '3.9.2023', [
                ('team', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:2, 6:2'),
            ]),
        ])])

        m = parser.parse_matches(html, SUBJECT)[0]
        assert m.competition_type == 'team'
        assert m.match_type == 'singles'

    def test_each_table_uses_its_own_section(self, parser):
        html = season_page([
            ('Jednotlivci - dvouhra', [
                tournament_table(1, 'A', '1.5.2023', [
                    ('2>1', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:1, 6:1'),
                ]),
            ]),
            ('Jednotlivci - čtyřhra', [
                tournament_table(2, 'B', '2.5.2023', [
                    ('2>1', [(SUBJECT, 'Kumstát Jan'), (PARTNER, 'Partner Petr')],
                     [(OPPONENT, 'Menšík Jakub'), (OPP_PARTNER, 'Soupeř Pavel')], '6:1, 6:1'),
                ]),
            ]),
        ])

        matches = parser.parse_matches(html, SUBJECT)
        assert [(m.tournament_id, m.match_type) for m in matches] == [(1, 'singles'), (2, 'doubles')]


class TestDegradedMarkup:

    def test_bad_date_falls_back_to_today(self, parser, caplog):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '31.2.2023', [
                ('32>16', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4'),
            ]),
        ])])

        with caplog.at_level(logging.WARNING):
            m = parser.parse_matches(html, SUBJECT)[0]

        assert m.tournament_date == date.today()
        assert 'tournament 555' in caplog.text

    def test_missing_date_falls_back_to_today(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Turnaj Praha', '', [
                ('32>16', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4'),
            ]),
        ])])

        assert parser.parse_matches(html, SUBJECT)[0].tournament_date == date.today()

    def test_block_without_tournament_id_is_skipped(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(None, 'Bez odkazu', '12.5.2023', [
                ('32>16', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4'),
            ]),
            tournament_table(558, 'S odkazem', '12.5.2023', [
                ('16>8', [(SUBJECT, 'Kumstát Jan')], [(OPPONENT, 'Menšík Jakub')], '6:3, 6:4'),
            ]),
        ])])

        matches = parser.parse_matches(html, SUBJECT)
        assert [m.tournament_id for m in matches] == [558]

    def test_empty_block_is_skipped(self, parser):
        html = season_page([('Jednotlivci - dvouhra', [
            tournament_table(555, 'Prázdný', '12.5.2023', []),
        ])])
        assert parser.parse_matches(html, SUBJECT) == []

    def test_page_without_tables(self, parser):
        assert parser.parse_matches('<html><body><p>Žádné zápasy</p></body></html>', SUBJECT) == []
