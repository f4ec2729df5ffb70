# h2h_scraper/validators/match_validator.py
"""
Per-record validation applied at ingest time.

Errors reject the record; warnings are recorded for the quality report
and the record is still stored. The source markup differs across
tournament formats and eras, so most anomalies are warnings.
"""

import re
from datetime import date
from typing import Dict, List, Tuple

from h2h_scraper.models import COMPETITION_TYPES, MATCH_TYPES, ParsedMatch, ValidationResult
from h2h_scraper.parsers.score_parser import is_walkover_score
from h2h_scraper.validators.score_validator import validate_score

VALID_ROUNDS = [
    '128>64', '64>32', '32>16', '16>8', '8>4', '4>2', '2>1',   # knockout rounds
    'team', 'skupina', 'final', 'semifinal', 'quarterfinal',    # other formats
    '1.k', '2.k', '3.k', '4.k',                                 # Czech round notation
    'f', 'sf', 'qf',                                            # short notation
]

OPPONENT_ID_PATTERN = re.compile(r'^10\d{5}$')
MIN_YEAR = 2000
MAX_POINTS = 10000


def validate_match(match: ParsedMatch) -> ValidationResult:
    """Check one extracted match for internal consistency"""
    result = ValidationResult()
    errors, warnings = result.errors, result.warnings

    # Tournament
    if not match.tournament_id:
        errors.append('Missing or invalid tournament ID')

    if not (match.tournament_name or '').strip():
        warnings.append('Missing tournament name')

    if match.tournament_date is None:
        warnings.append('Missing tournament date')
    else:
        year = match.tournament_date.year
        if year < MIN_YEAR or year > date.today().year + 1:
            warnings.append(f"Unusual tournament year: {year}")

    # Players
    if not match.opponent_id and not match.is_walkover:
        errors.append('Missing opponent ID (not a walkover)')

    if match.opponent_id and not OPPONENT_ID_PATTERN.match(str(match.opponent_id)):
        warnings.append(f"Unusual opponent ID format: {match.opponent_id}")

    if match.match_type == 'doubles':
        if not match.partner_id:
            warnings.append('Doubles match missing partner ID')
        if not match.opponent_partner_id and not match.is_walkover:
            warnings.append('Doubles match missing opponent partner ID')

    # Enumerations
    if match.match_type not in MATCH_TYPES:
        errors.append(f"Invalid match type: {match.match_type}")

    if match.competition_type not in COMPETITION_TYPES:
        errors.append(f"Invalid competition type: {match.competition_type}")

    # Round
    round_label = (match.round or '').strip()
    if not round_label:
        errors.append('Missing round information')
    elif not any(r in round_label.lower() for r in VALID_ROUNDS):
        warnings.append(f"Unusual round format: {match.round}")

    # Score
    if not (match.score or '').strip():
        errors.append('Missing score')
    else:
        score_check = validate_score(match.score)
        errors.extend(f"Score validation: {e}" for e in score_check['errors'])
        warnings.extend(f"Score validation: {w}" for w in score_check['warnings'])

        if is_walkover_score(match.score) != match.is_walkover:
            warnings.append(f'Walkover flag mismatch: is_walkover={match.is_walkover} '
                            f'but score="{match.score}"')

    # Points
    if match.points_earned < 0:
        errors.append(f"Negative points earned: {match.points_earned}")
    elif match.points_earned > MAX_POINTS:
        warnings.append(f"Unusually high points earned: {match.points_earned}")

    return result


def validate_matches(matches: List[ParsedMatch]) -> Dict:
    """Validate a batch and summarize"""
    valid_count = 0
    invalid = []
    warning_count = 0

    for match in matches:
        validation = validate_match(match)
        if validation.is_valid:
            valid_count += 1
        else:
            invalid.append((match, validation))
        warning_count += len(validation.warnings)

    return {
        'valid_count': valid_count,
        'invalid_count': len(invalid),
        'warning_count': warning_count,
        'invalid_matches': invalid,
    }


def find_duplicates(matches: List[ParsedMatch]) -> List[Tuple[ParsedMatch, ParsedMatch]]:
    """Pairs from one extraction that share tournament, opponent, round and type"""
    seen = {}
    duplicates = []
    for match in matches:
        key = (match.tournament_id, match.opponent_id, match.round, match.match_type)
        if key in seen:
            duplicates.append((seen[key], match))
        else:
            seen[key] = match
    return duplicates
