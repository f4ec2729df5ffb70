# h2h_scraper/validators/integrity.py
"""
Cross-record checks over stored matches.

Per-record validation at ingest cannot see a player's whole run through a
tournament; these rules can. The auditor only reads matches and produces a
report. Deleting flagged rows is a separate operator action (`repair`).
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from h2h_scraper.models import IssueType, Side, ValidationIssue
from h2h_scraper.parsers.score_parser import parse_score

logger = logging.getLogger(__name__)

# Knockout stages; higher = earlier in the draw
ROUND_ORDER = {
    '128>64': 7,
    '64>32': 6,
    '32>16': 5,
    '16>8': 4,
    '8>4': 3,
    '4>2': 2,
    '2>1': 1,
}
FINAL_ROUND = '2>1'

RULE_ONE_MATCH_PER_ROUND = 'RULE_1_ONE_MATCH_PER_ROUND'
RULE_WINNER_CONTINUITY = 'RULE_2_WINNER_CONTINUITY'
RULE_NO_MATCH_AFTER_LOSS = 'NO_MATCH_AFTER_LOSS'
RULE_SCORE_CONSISTENCY = 'RULE_4_SCORE_CONSISTENCY'
RULE_DUPLICATE_MATCH = 'DUPLICATE_MATCH'


def get_round_order(round_label: str) -> int:
    """Knockout order of a round label, -1 for group/team/other formats"""
    return ROUND_ORDER.get((round_label or '').strip(), -1)


def get_next_round(round_label: str) -> Optional[str]:
    """The round a winner of `round_label` plays next, None after the final"""
    order = get_round_order(round_label)
    if order <= 1:
        return None
    for label, o in ROUND_ORDER.items():
        if o == order - 1:
            return label
    return None


def player_won(match: dict, player_id: int) -> bool:
    """True if the player was on the side of the stored winner (lead or partner)"""
    winner = match.get('winner_id')
    for side in (('player1_id', 'player1_partner_id'), ('player2_id', 'player2_partner_id')):
        team = [match.get(key) for key in side]
        if winner in team:
            return player_id in team
    return winner == player_id


@dataclass
class AuditReport:
    issues: List[ValidationIssue] = field(default_factory=list)
    players_checked: Set[int] = field(default_factory=set)
    tournaments_checked: Set[int] = field(default_factory=set)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.type is IssueType.ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.type is IssueType.WARNING]

    @property
    def summary(self) -> Dict:
        return {
            'tournaments_checked': len(self.tournaments_checked),
            'players_checked': len(self.players_checked),
            'errors': len(self.errors),
            'warnings': len(self.warnings),
        }

    def to_dict(self) -> Dict:
        return {
            'summary': self.summary,
            'issues': [i.to_dict() for i in self.issues],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def format_report(self) -> str:
        summary = self.summary
        lines = [
            '',
            '=' * 60,
            'TOURNAMENT INTEGRITY REPORT',
            '=' * 60,
            f"Players checked:     {summary['players_checked']}",
            f"Tournaments checked: {summary['tournaments_checked']}",
            f"Errors:              {summary['errors']}",
            f"Warnings:            {summary['warnings']}",
        ]

        if not self.issues:
            lines += ['', 'No issues found.']

        for title, group in (('ERRORS', self.errors), ('WARNINGS', self.warnings)):
            if not group:
                continue
            lines += ['', f"{title}:"]
            by_rule: Dict[str, List[ValidationIssue]] = {}
            for issue in group:
                by_rule.setdefault(issue.rule, []).append(issue)
            for rule, issues in by_rule.items():
                lines.append(f"  {rule} ({len(issues)})")
                for issue in issues:
                    who = issue.player_name or f"Player {issue.player_id}"
                    where = issue.tournament_name or f"Tournament {issue.tournament_id}"
                    lines.append(f"    - {who} @ {where}: {issue.details}")
                    if issue.match_ids:
                        lines.append(f"      match ids: {', '.join(str(m) for m in issue.match_ids)}")

        lines += ['=' * 60, '']
        return '\n'.join(lines)


class IntegrityAuditor:
    """Read-only consistency checks over the match store"""

    def __init__(self, db):
        self.db = db

    def check_player_tournament(self, player_id: int, tournament_id: int, matches: List[dict],
                                player_name: str = None,
                                tournament_name: str = None) -> List[ValidationIssue]:
        """Apply the per-player rules to one player's matches in one tournament"""
        issues = []

        def issue(issue_type: IssueType, rule: str, details: str, match_ids: List[int]):
            issues.append(ValidationIssue(
                type=issue_type, rule=rule,
                player_id=player_id, tournament_id=tournament_id,
                details=details, match_ids=match_ids,
                player_name=player_name, tournament_name=tournament_name,
            ))

        if not matches:
            return issues

        knockout = sorted(
            (m for m in matches if get_round_order(m['round']) > 0),
            key=lambda m: (-get_round_order(m['round']), m['id'])
        )

        # Singles and doubles are separate draws
        draws: Dict[str, List[dict]] = {}
        for m in knockout:
            draws.setdefault(m.get('match_type') or 'singles', []).append(m)

        for match_type, draw in draws.items():
            # One match per knockout round
            by_round: Dict[str, List[dict]] = {}
            for m in draw:
                by_round.setdefault(m['round'].strip(), []).append(m)
            for round_label, round_matches in by_round.items():
                if len(round_matches) > 1:
                    issue(IssueType.WARNING, RULE_ONE_MATCH_PER_ROUND,
                          f"Multiple {match_type} matches in round {round_label} "
                          f"(found {len(round_matches)}, expected max 1)",
                          [m['id'] for m in round_matches])

            # Nothing after the earliest loss
            losses = [m for m in draw if not player_won(m, player_id)]
            if losses:
                first_loss = losses[0]
                loss_order = get_round_order(first_loss['round'])
                for m in draw:
                    if get_round_order(m['round']) < loss_order:
                        issue(IssueType.ERROR, RULE_NO_MATCH_AFTER_LOSS,
                              f"Player has {match_type} match in round {m['round']} after losing "
                              f"in round {first_loss['round']}",
                              [m['id']])

            # Winners should show up in the next round
            for m in draw:
                if not player_won(m, player_id) or m['round'].strip() == FINAL_ROUND:
                    continue
                next_round = get_next_round(m['round'])
                if next_round and next_round not in by_round:
                    issue(IssueType.WARNING, RULE_WINNER_CONTINUITY,
                          f"Player won {match_type} round {m['round']} but has no match "
                          f"in next round {next_round}",
                          [m['id']])

        # Stored winner agrees with the score (any round format)
        for m in matches:
            if not m.get('score') or m.get('is_walkover'):
                continue
            winner_side = parse_score(m['score']).winner
            if winner_side is None:
                continue
            expected = m['player1_id'] if winner_side is Side.LEFT else m['player2_id']
            if expected != m.get('winner_id'):
                issue(IssueType.WARNING, RULE_SCORE_CONSISTENCY,
                      f'Score "{m["score"]}" suggests winner should be {expected}, '
                      f"but winner_id is {m.get('winner_id')}",
                      [m['id']])

        return issues

    def audit_player_tournament(self, player_id: int, tournament_id: int) -> List[ValidationIssue]:
        matches = self.db.get_player_tournament_matches(player_id, tournament_id)
        if not matches:
            return []
        player_name = self.db.get_player_name(player_id) or f"Player {player_id}"
        tournament_name = self.db.get_tournament_name(tournament_id) or f"Tournament {tournament_id}"
        return self.check_player_tournament(player_id, tournament_id, matches,
                                            player_name, tournament_name)

    def audit_player(self, player_id: int, report: AuditReport = None) -> List[ValidationIssue]:
        """Every tournament the player has stored matches in"""
        issues = []
        for tournament_id in self.db.get_player_tournament_ids(player_id):
            issues.extend(self.audit_player_tournament(player_id, tournament_id))
            if report is not None:
                report.tournaments_checked.add(tournament_id)
        if report is not None:
            report.players_checked.add(player_id)
        return issues

    def audit_tournament(self, tournament_id: int, report: AuditReport = None) -> List[ValidationIssue]:
        """Every player with stored matches in the tournament"""
        issues = []
        for player_id in self.db.get_tournament_player_ids(tournament_id):
            issues.extend(self.audit_player_tournament(player_id, tournament_id))
            if report is not None:
                report.players_checked.add(player_id)
        if report is not None:
            report.tournaments_checked.add(tournament_id)
        return issues

    def find_duplicate_matches(self) -> List[ValidationIssue]:
        """Whole-store scan on the duplicate key"""
        issues = []
        for group in self.db.find_duplicate_match_groups():
            issues.append(ValidationIssue(
                type=IssueType.ERROR,
                rule=RULE_DUPLICATE_MATCH,
                player_id=group['player1_id'],
                tournament_id=group['tournament_id'],
                details=(f"Duplicate match found: {group['count']} entries for round {group['round']}, "
                         f"players {group['player1_id']} vs {group['player2_id']}, "
                         f"type {group['match_type']}"),
                match_ids=list(group['match_ids']),
            ))
        return issues

    def audit_all(self, player_id: int = None, tournament_id: int = None,
                  limit: int = 100) -> AuditReport:
        """Duplicate scan plus per-player rules for one player, one tournament,
        or the `limit` players with the most stored matches."""
        report = AuditReport()
        report.issues.extend(self.find_duplicate_matches())

        if player_id:
            report.issues.extend(self.audit_player(player_id, report))
        elif tournament_id:
            report.issues.extend(self.audit_tournament(tournament_id, report))
        else:
            for pid in self.db.get_top_player_ids(limit):
                if pid in report.players_checked:
                    continue
                report.issues.extend(self.audit_player(pid, report))

        logger.info(f"Integrity audit: {report.summary['errors']} errors, "
                    f"{report.summary['warnings']} warnings across "
                    f"{report.summary['players_checked']} players")
        return report

    def repair(self, execute: bool = False) -> Dict:
        """
        Delete duplicate rows (keeping the lowest id of each group) and matches
        with the same player on both sides. Dry run unless `execute` is set.
        """
        duplicate_ids = []
        for group in self.db.find_duplicate_match_groups():
            ids = sorted(group['match_ids'])
            logger.info(f"Duplicate group: tournament {group['tournament_id']}, round {group['round']}, "
                        f"{group['player1_id']} vs {group['player2_id']} ({group['match_type']}): "
                        f"keeping {ids[0]}, deleting {ids[1:]}")
            duplicate_ids.extend(ids[1:])

        self_match_ids = []
        for row in self.db.find_self_matches():
            logger.info(f"Match {row['id']}: same player on both sides ({row['player1_id']})")
            self_match_ids.append(row['id'])

        to_delete = sorted(set(duplicate_ids) | set(self_match_ids))
        deleted = 0
        if execute and to_delete:
            deleted = self.db.delete_matches(to_delete)
            logger.info(f"Deleted {deleted} matches")
        elif to_delete:
            logger.info(f"Dry run: would delete {len(to_delete)} matches")

        return {
            'duplicate_ids': duplicate_ids,
            'self_match_ids': self_match_ids,
            'to_delete': to_delete,
            'deleted': deleted,
            'dry_run': not execute,
        }
