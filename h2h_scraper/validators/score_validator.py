# h2h_scraper/validators/score_validator.py
"""
Score validation for tennis match scores.

Handles the formats seen on cztenis:
- Standard: "6:3, 6:4"
- Tiebreak: "7:6 (3), 6:4" or "6:7 (5), 6:3"
- Super tiebreak: "6:4, 6:7 (5), 1:0 (7)"
- Walkovers: "scr.", "w.o.", "def.", "ret."
"""

from typing import Dict, List

from h2h_scraper.parsers.score_parser import SET_PATTERN, is_walkover_score

MAX_SETS = 5
MAX_SET_GAMES = 20
MAX_TIEBREAK_POINTS = 20
MIN_SUPER_TIEBREAK_POINTS = 7


def validate_score(score: str) -> Dict:
    """
    Check a score string against the set grammar.

    Returns:
        {'valid': bool, 'sets': int, 'errors': [...], 'warnings': [...]}
        Errors are malformed sets; warnings are unusual-but-plausible scores.
    """
    if not score or not score.strip():
        return {'valid': False, 'sets': 0, 'errors': ['Score is empty'], 'warnings': []}

    trimmed = score.strip()

    if is_walkover_score(trimmed):
        return {
            'valid': True,
            'sets': 0,
            'errors': [],
            'warnings': ['Score indicates walkover/retirement'],
        }

    sets = [s.strip() for s in trimmed.split(',')]
    errors: List[str] = []
    warnings: List[str] = []

    for number, set_score in enumerate(sets, start=1):
        set_errors, set_warnings = validate_set(set_score, number)
        errors.extend(set_errors)
        warnings.extend(set_warnings)

    if len(sets) > MAX_SETS:
        warnings.append(f"Unusual number of sets: {len(sets)}")

    return {'valid': not errors, 'sets': len(sets), 'errors': errors, 'warnings': warnings}


def validate_set(set_score: str, number: int):
    """Validate one set. Returns (errors, warnings)."""
    errors: List[str] = []
    warnings: List[str] = []

    m = SET_PATTERN.match(set_score)
    if not m:
        errors.append(f'Set {number}: Invalid format "{set_score}"')
        return errors, warnings

    games1 = int(m.group(1))
    games2 = int(m.group(2))
    tiebreak = int(m.group(3)) if m.group(3) else None

    if games1 > MAX_SET_GAMES or games2 > MAX_SET_GAMES:
        warnings.append(f"Set {number}: Unusually high game count ({games1}:{games2})")

    if tiebreak is not None:
        if {games1, games2} == {7, 6}:
            if tiebreak > MAX_TIEBREAK_POINTS:
                warnings.append(f"Set {number}: Unusually long tiebreak ({tiebreak})")
        elif {games1, games2} == {1, 0}:
            if tiebreak < MIN_SUPER_TIEBREAK_POINTS:
                warnings.append(f"Set {number}: Super tiebreak ended early ({tiebreak})")
        elif games1 >= 6 and games2 >= 6:
            warnings.append(f"Set {number}: Tiebreak notation in long set ({games1}:{games2})")
        else:
            warnings.append(f"Set {number}: Unexpected tiebreak notation ({games1}:{games2} ({tiebreak}))")
        return errors, warnings

    high = max(games1, games2)
    low = min(games1, games2)
    diff = high - low

    if high == 6:
        if low > 4:
            warnings.append(f"Set {number}: 6-{low} is unusual (expected 7-5)")
    elif high == 7 and low == 5:
        pass
    elif high >= 6 and diff == 2:
        pass  # long set, e.g. 12:10
    elif high < 6:
        warnings.append(f"Set {number}: Set ended before 6 games ({games1}:{games2})")
    elif high > 7 and diff < 2:
        errors.append(f"Set {number}: Invalid score ({games1}:{games2}) - must win by 2")

    return errors, warnings
