# tests/test_score_parser.py

import pytest

from h2h_scraper.models import Side
from h2h_scraper.parsers.score_parser import (
    determine_winner_from_score,
    is_walkover_score,
    normalize_score,
    parse_score,
    parse_set,
    split_sets,
)
from h2h_scraper.validators.score_validator import validate_score


class TestParseSet:

    @pytest.mark.parametrize('text,left,right,winner', [
        ('6:3', 6, 3, Side.LEFT),
        ('3:6', 3, 6, Side.RIGHT),
        ('7:6 (5)', 7, 6, Side.LEFT),
        ('6:7(8)', 6, 7, Side.RIGHT),
        ('1:0 (10)', 1, 0, Side.LEFT),
        ('5:5', 5, 5, None),
    ])
    def test_set_winner_has_more_games(self, text, left, right, winner):
        parsed = parse_set(text)
        assert (parsed.left, parsed.right) == (left, right)
        assert parsed.winner is winner

    def test_garbage_is_none(self):
        assert parse_set('abc') is None
        assert parse_set('6-3') is None

    def test_spaced_colon_is_rejected_like_the_validator(self):
        assert parse_set('6 : 3') is None
        assert validate_score('6 : 3, 6:4')['valid'] is False
        result = parse_score('6 : 3, 6:4')
        assert [s.text for s in result.sets] == ['6:4']
        assert result.winner is Side.LEFT
        assert parse_score('6 : 3').winner is None


class TestParseScore:

    def test_straight_sets(self):
        result = parse_score('6:3, 6:4')
        assert result.left_sets == 2
        assert result.right_sets == 0
        assert result.winner is Side.LEFT
        assert not result.is_walkover

    def test_three_sets_with_tiebreak(self):
        result = parse_score('4:6, 7:6 (5), 6:3')
        assert [s.winner for s in result.sets] == [Side.RIGHT, Side.LEFT, Side.LEFT]
        assert result.winner is Side.LEFT

    def test_even_sets_do_not_count(self):
        result = parse_score('6:6, 6:3')
        assert result.left_sets == 1
        assert result.right_sets == 0

    def test_no_majority_has_no_winner(self):
        result = parse_score('6:3, 3:6')
        assert result.winner is None

    def test_walkover_has_no_winner(self):
        result = parse_score('scr.')
        assert result.is_walkover
        assert result.sets == []
        assert result.winner is None
        assert not result.is_retirement

    def test_retirement_keeps_played_sets(self):
        result = parse_score('6:3, 2:0 scr.')
        assert result.is_walkover
        assert result.is_retirement
        assert [(s.left, s.right) for s in result.sets] == [(6, 3), (2, 0)]

    def test_empty(self):
        result = parse_score('')
        assert result.sets == []
        assert result.winner is None


class TestSubjectWon:

    def test_subject_on_left_wins_straight_sets(self):
        assert determine_winner_from_score('6:3, 6:4', Side.LEFT) == (True, True)

    def test_swapping_side_inverts_result(self):
        for score in ['6:3, 6:4', '4:6, 7:6 (5), 6:3', '2:6, 1:6', '7:5, 4:6, 10:8']:
            left_won, _ = determine_winner_from_score(score, Side.LEFT)
            right_won, _ = determine_winner_from_score(score, Side.RIGHT)
            assert left_won != right_won

    def test_subject_on_right_of_left_won_three_setter(self):
        # left takes sets 2 and 3
        assert determine_winner_from_score('4:6, 7:6 (5), 6:3', Side.RIGHT) == (False, True)

    def test_subject_on_right_wins(self):
        assert determine_winner_from_score('3:6, 6:7 (4)', Side.RIGHT) == (True, True)

    def test_walkover_falls_back_to_left_uncertain(self):
        assert determine_winner_from_score('w.o.', Side.LEFT) == (True, False)
        assert determine_winner_from_score('w.o.', Side.RIGHT) == (False, False)


class TestHelpers:

    @pytest.mark.parametrize('score', ['scr', 'SCR.', 'w.o.', 'def.', 'ret.', 'Skreč', '6:3, 1:0 ret.'])
    def test_walkover_markers(self, score):
        assert is_walkover_score(score)

    @pytest.mark.parametrize('score', ['6:3, 6:4', '', None, '7:6 (5)'])
    def test_not_walkover(self, score):
        assert not is_walkover_score(score)

    def test_split_sets_drops_markers_and_blanks(self):
        assert split_sets('6:3, , 6:4, scr.') == ['6:3', '6:4']

    def test_normalize_score(self):
        assert normalize_score('6:3 ,6:4') == '6:3, 6:4'
