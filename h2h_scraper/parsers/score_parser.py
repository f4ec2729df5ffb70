# h2h_scraper/parsers/score_parser.py

import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from h2h_scraper.models import Side

logger = logging.getLogger(__name__)

# Walkover/retirement markers seen on cztenis
WALKOVER_PATTERNS = ['scr', 'scr.', 'w.o.', 'def.', 'ret.', 'skreč']

# A single set like "6:3", with tiebreak "7:6 (5)" or super tiebreak "1:0 (10)"
SET_PATTERN = re.compile(r'^(\d+):(\d+)(?:\s*\((\d*)\))?$')


@dataclass
class SetScore:
    text: str
    left: int
    right: int

    @property
    def winner(self) -> Optional[Side]:
        """Side with strictly more games; None for an even set."""
        if self.left > self.right:
            return Side.LEFT
        if self.right > self.left:
            return Side.RIGHT
        return None


@dataclass
class ScoreResult:
    full_score: str
    sets: List[SetScore] = field(default_factory=list)
    is_walkover: bool = False
    left_sets: int = 0
    right_sets: int = 0

    @property
    def is_retirement(self) -> bool:
        """Walkover marker after at least one played set."""
        return self.is_walkover and bool(self.sets)

    @property
    def winner(self) -> Optional[Side]:
        """Strict set-majority winner, or None when the score cannot tell."""
        if self.is_walkover:
            return None
        if self.left_sets > self.right_sets:
            return Side.LEFT
        if self.right_sets > self.left_sets:
            return Side.RIGHT
        return None

    def subject_won(self, subject_side: Side) -> Tuple[bool, bool]:
        """Return (subject_won, winner_certain) for the subject on `subject_side`.

        The source lists the nominal winner on a fixed side regardless of whose
        profile is shown, so the result is derived from the games, not the layout.
        When the winner cannot be derived (walkover, retirement, no majority) the
        left side is assumed and winner_certain is False.
        """
        winner = self.winner
        if winner is None:
            return subject_side is Side.LEFT, False
        return winner is subject_side, True


def is_walkover_score(score: str) -> bool:
    """Check if a score carries a walkover/retirement marker"""
    if not score:
        return False
    lower = score.strip().lower()
    return any(p in lower for p in WALKOVER_PATTERNS)


def split_sets(score: str) -> List[str]:
    """Split "6:3, 6:4" into ["6:3", "6:4"], dropping empty chunks and bare markers."""
    parts = []
    for chunk in (score or '').split(','):
        chunk = chunk.strip()
        if not chunk or chunk.lower() in WALKOVER_PATTERNS:
            continue
        parts.append(chunk)
    return parts


def parse_set(set_text: str) -> Optional[SetScore]:
    """Parse one set on the same grammar the validator enforces; tiebreak points are ignored."""
    text = set_text.strip()
    m = SET_PATTERN.match(text)
    if not m:
        return None
    return SetScore(text=text, left=int(m.group(1)), right=int(m.group(2)))


def parse_score(score_text: str) -> ScoreResult:
    """Break a raw score string into sets and tally sets won per side."""
    full_score = (score_text or '').strip()
    result = ScoreResult(full_score=full_score, is_walkover=is_walkover_score(full_score))

    for chunk in split_sets(full_score):
        parsed = parse_set(chunk)
        if parsed is None:
            # "6:3, 2:0 scr." keeps the marker glued to the last set
            if result.is_walkover:
                stripped = chunk
                for p in sorted(WALKOVER_PATTERNS, key=len, reverse=True):
                    stripped = re.sub(re.escape(p), '', stripped, flags=re.I)
                parsed = parse_set(stripped)
            if parsed is None:
                logger.debug(f"Skipping unparseable set '{chunk}' in '{full_score}'")
                continue
        result.sets.append(parsed)
        if parsed.winner is Side.LEFT:
            result.left_sets += 1
        elif parsed.winner is Side.RIGHT:
            result.right_sets += 1

    return result


def determine_winner_from_score(score: str, subject_side: Side) -> Tuple[bool, bool]:
    """Shortcut: (subject_won, winner_certain) straight from a score string."""
    return parse_score(score).subject_won(subject_side)


def normalize_score(score: str) -> str:
    """Normalize score spacing: "6:3 ,6:4" -> "6:3, 6:4"."""
    return ', '.join(s.strip() for s in (score or '').split(',') if s.strip())
