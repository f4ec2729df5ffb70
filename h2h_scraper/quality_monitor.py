# h2h_scraper/quality_monitor.py

import logging
from datetime import datetime
from typing import Dict, List, Tuple

from h2h_scraper.models import ParsedMatch, ValidationResult

logger = logging.getLogger(__name__)

MAX_SAMPLES = 50  # invalid matches kept for review


class QualityMonitor:
    """Running counts of what the crawl extracted, accepted and rejected."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.stats = {
            'total_matches': 0,
            'valid_matches': 0,
            'invalid_matches': 0,
            'total_warnings': 0,
            'missing_opponents': 0,
            'invalid_scores': 0,
            'unusual_rounds': 0,
            'walkovers': 0,
            'uncertain_winners': 0,
            'duplicates': 0,
            'skipped': 0,
            'players_processed': 0,
            'players_failed': 0,
            'seasons_processed': 0,
            'seasons_failed': 0,
            'start_time': datetime.now(),
            'last_update': datetime.now(),
        }
        self.invalid_samples: List[Tuple[ParsedMatch, ValidationResult]] = []

    def _touch(self):
        self.stats['last_update'] = datetime.now()

    def record_match(self, match: ParsedMatch, validation: ValidationResult):
        """Record one validation outcome"""
        self.stats['total_matches'] += 1
        self._touch()

        if validation.is_valid:
            self.stats['valid_matches'] += 1
        else:
            self.stats['invalid_matches'] += 1
            if len(self.invalid_samples) < MAX_SAMPLES:
                self.invalid_samples.append((match, validation))
            logger.warning(f"Invalid match in tournament {match.tournament_id} "
                           f"({match.tournament_name}) vs {match.opponent_id}: "
                           f"{'; '.join(validation.errors)}")

        self.stats['total_warnings'] += len(validation.warnings)

        if not match.opponent_id and not match.is_walkover:
            self.stats['missing_opponents'] += 1
        if any(e.startswith('Score') for e in validation.errors):
            self.stats['invalid_scores'] += 1
        if any('round' in w.lower() for w in validation.warnings):
            self.stats['unusual_rounds'] += 1
        if match.is_walkover:
            self.stats['walkovers'] += 1
        if not match.winner_certain:
            self.stats['uncertain_winners'] += 1

    def record_season(self, season_code: str, match_count: int, failed: bool = False):
        self._touch()
        if failed:
            self.stats['seasons_failed'] += 1
            return
        self.stats['seasons_processed'] += 1
        logger.debug(f"Season {season_code} processed: {match_count} matches found")

    def record_player(self, player_id: int, match_count: int, failed: bool = False):
        self._touch()
        if failed:
            self.stats['players_failed'] += 1
            return
        self.stats['players_processed'] += 1
        logger.info(f"Player {player_id} processed: {match_count} matches scraped")

    def record_duplicate(self):
        self.stats['duplicates'] += 1

    def record_skipped(self):
        """Accepted match that still could not be stored (e.g. walkover without opponent)"""
        self.stats['skipped'] += 1

    def get_report(self) -> Dict:
        """Stats plus derived metrics"""
        report = dict(self.stats)
        total = report['total_matches']
        players = report['players_processed']
        report['accuracy'] = 100 * report['valid_matches'] / total if total else 0.0
        report['avg_matches_per_player'] = total / players if players else 0.0
        report['avg_seasons_per_player'] = report['seasons_processed'] / players if players else 0.0
        report['runtime_seconds'] = (datetime.now() - report['start_time']).total_seconds()
        return report

    def format_report(self) -> str:
        r = self.get_report()
        minutes, seconds = divmod(int(r['runtime_seconds']), 60)

        lines = [
            '',
            '=' * 60,
            'DATA QUALITY REPORT',
            '=' * 60,
            '',
            'Overall:',
            f"  Total matches:        {r['total_matches']:,}",
            f"  Valid matches:        {r['valid_matches']:,} ({r['accuracy']:.2f}%)",
            f"  Invalid matches:      {r['invalid_matches']:,}",
            f"  Total warnings:       {r['total_warnings']:,}",
            '',
            'Players:',
            f"  Players processed:    {r['players_processed']:,}",
            f"  Players failed:       {r['players_failed']:,}",
            f"  Seasons processed:    {r['seasons_processed']:,}",
            f"  Seasons failed:       {r['seasons_failed']:,}",
            f"  Avg matches/player:   {r['avg_matches_per_player']:.1f}",
            f"  Avg seasons/player:   {r['avg_seasons_per_player']:.1f}",
            '',
            'Issues:',
            f"  Missing opponents:    {r['missing_opponents']:,}",
            f"  Invalid scores:       {r['invalid_scores']:,}",
            f"  Unusual rounds:       {r['unusual_rounds']:,}",
            f"  Walkovers:            {r['walkovers']:,}",
            f"  Uncertain winners:    {r['uncertain_winners']:,}",
            f"  Duplicates:           {r['duplicates']:,}",
            f"  Skipped:              {r['skipped']:,}",
            '',
            f"Runtime: {minutes}m {seconds}s (started {r['start_time']:%Y-%m-%d %H:%M:%S})",
        ]

        if self.invalid_samples:
            lines += ['', 'Sample invalid matches (first 5):']
            for i, (match, validation) in enumerate(self.invalid_samples[:5], 1):
                lines.append(f"  {i}. Tournament {match.tournament_id} - {match.tournament_name}")
                lines.append(f"     Errors: {', '.join(validation.errors)}")

        lines += ['=' * 60, '']
        return '\n'.join(lines)

    def print_report(self):
        print(self.format_report())
