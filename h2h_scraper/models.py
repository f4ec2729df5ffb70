# h2h_scraper/models.py

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional


class Side(Enum):
    """Position of a participant cell in the source markup."""
    LEFT = 'left'
    RIGHT = 'right'

    @property
    def other(self) -> 'Side':
        return Side.RIGHT if self is Side.LEFT else Side.LEFT


class QueueStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'
    FAILED = 'failed'


class IssueType(str, Enum):
    ERROR = 'ERROR'
    WARNING = 'WARNING'


MATCH_TYPES = ('singles', 'doubles')
COMPETITION_TYPES = ('individual', 'team')


@dataclass
class Participant:
    id: int
    name: str


@dataclass
class MatchSide:
    """One side of a match row: one participant for singles, two for doubles."""
    side: Side
    participants: List[Participant] = field(default_factory=list)

    def contains(self, player_id: int) -> bool:
        return any(p.id == player_id for p in self.participants)

    def teammate_of(self, player_id: int) -> Optional[Participant]:
        for p in self.participants:
            if p.id != player_id:
                return p
        return None


@dataclass
class QueueItem:
    player_id: int
    priority: int = 0
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    depth: int = 0
    source_player_id: Optional[int] = None
    last_attempt_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> 'QueueItem':
        return cls(
            player_id=row['player_id'],
            priority=row.get('priority') or 0,
            status=QueueStatus(row.get('status') or 'pending'),
            attempts=row.get('attempts') or 0,
            depth=row.get('depth') or 0,
            source_player_id=row.get('source_player_id'),
            last_attempt_at=row.get('last_attempt_at'),
            error_message=row.get('error_message'),
            created_at=row.get('created_at'),
        )


@dataclass
class ParsedMatch:
    """A match as seen from the subject player's profile page."""
    tournament_id: int
    tournament_name: str
    tournament_date: date
    match_type: str
    competition_type: str
    round: str
    score: str
    is_walkover: bool
    is_winner: bool
    winner_certain: bool = True
    opponent_id: Optional[int] = None
    opponent_name: Optional[str] = None
    partner_id: Optional[int] = None
    partner_name: Optional[str] = None
    opponent_partner_id: Optional[int] = None
    opponent_partner_name: Optional[str] = None
    points_earned: int = 0
    sets: List[str] = field(default_factory=list)

    def participant_ids(self) -> List[int]:
        ids = [self.opponent_id, self.partner_id, self.opponent_partner_id]
        return [i for i in ids if i]


@dataclass
class ValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass
class ValidationIssue:
    type: IssueType
    rule: str
    player_id: Optional[int]
    tournament_id: Optional[int]
    details: str
    match_ids: List[int] = field(default_factory=list)
    player_name: Optional[str] = None
    tournament_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'rule': self.rule,
            'player_id': self.player_id,
            'player_name': self.player_name,
            'tournament_id': self.tournament_id,
            'tournament_name': self.tournament_name,
            'details': self.details,
            'match_ids': list(self.match_ids),
        }
