# h2h_scraper/crawler.py

import logging
import threading
from typing import Dict, List, Optional, Tuple

from h2h_scraper.config import CRAWL_CONFIG, ERROR_CONFIG
from h2h_scraper.frontier import CrawlFrontier, QueueError
from h2h_scraper.models import ParsedMatch
from h2h_scraper.pacer import AdaptivePacer
from h2h_scraper.parsers.match_parser import MatchParser
from h2h_scraper.quality_monitor import QualityMonitor
from h2h_scraper.request_handler import FetchError
from h2h_scraper.validators.integrity import get_round_order
from h2h_scraper.validators.match_validator import validate_match

logger = logging.getLogger(__name__)


class CrawlCancelled(Exception):
    """The stop event was set while a player was being crawled."""


def _team(lead: Optional[int], teammate: Optional[int]) -> Tuple[Optional[int], Optional[int]]:
    """Order a side by player id so every participant's view stores it the same way"""
    ids = sorted(pid for pid in (lead, teammate) if pid)
    ids += [None] * (2 - len(ids))
    return ids[0], ids[1]


def build_match_fields(subject_id: int, match: ParsedMatch) -> Dict:
    """Stored form of a match: the winning side is always player1, each side lower id first"""
    if match.is_winner:
        winners = _team(subject_id, match.partner_id)
        losers = _team(match.opponent_id, match.opponent_partner_id)
    else:
        winners = _team(match.opponent_id, match.opponent_partner_id)
        losers = _team(subject_id, match.partner_id)
    p1, p1_partner = winners
    p2, p2_partner = losers

    round_order = get_round_order(match.round)
    return {
        'tournament_id': match.tournament_id,
        'match_type': match.match_type,
        'competition_type': match.competition_type,
        'round': match.round,
        'round_order': round_order if round_order > 0 else None,
        'player1_id': p1,
        'player2_id': p2,
        'player1_partner_id': p1_partner,
        'player2_partner_id': p2_partner,
        'score': match.score,
        'is_walkover': match.is_walkover,
        'winner_id': p1,
        'winner_certain': match.winner_certain,
        'points_earned': match.points_earned,
        'match_date': match.tournament_date,
    }


class CrawlOrchestrator:
    """
    Single-worker crawl loop: dequeue a player, fetch the profile and every
    season, store accepted matches and push newly seen players back into the
    frontier one level deeper.

    Failures are contained at the narrowest scope: a bad match never costs
    the season, a bad season never costs the player. Only a failed profile
    fetch marks the queue item failed.
    """

    def __init__(self, db, fetcher, frontier: CrawlFrontier = None, pacer: AdaptivePacer = None,
                 parser: MatchParser = None, monitor: QualityMonitor = None,
                 max_players: int = None, stop_event: threading.Event = None,
                 config: dict = None):
        self.config = config or CRAWL_CONFIG
        self.db = db
        self.fetcher = fetcher
        self.frontier = frontier or CrawlFrontier(db, self.config['max_depth'])
        self.pacer = pacer or AdaptivePacer()
        self.parser = parser or MatchParser()
        self.monitor = monitor or QualityMonitor()
        self.max_players = self.config['max_players'] if max_players is None else max_players
        self.stop_event = stop_event or threading.Event()
        self.poll_interval = self.config.get('empty_queue_poll', 5)
        self.discovered_priority = self.config.get('discovered_priority', 0)

        self.players_scraped = 0
        self.players_failed = 0
        self.matches_saved = 0
        self.errors: List[str] = []

    def stop(self):
        logger.info("Stop requested, finishing current step...")
        self.stop_event.set()

    def _pace(self):
        if not self.pacer.wait_for_next(self.stop_event):
            raise CrawlCancelled()

    # --- One player ---

    def scrape_player(self, player_id: int, depth: int = 0) -> int:
        """Crawl one player's profile and seasons. Returns matches stored."""
        logger.info(f"Scraping player {player_id} (depth {depth})")

        self._pace()
        try:
            _, profile, seasons = self.fetcher.fetch_profile(player_id)
        except FetchError:
            self.pacer.on_error()
            raise
        self.pacer.on_success()

        self.db.upsert_player(player_id, profile)
        logger.info(f"Player {player_id} ({profile.get('name') or '?'}): found {len(seasons)} seasons")

        saved = 0
        found = 0
        for season in seasons:
            code, label = season['value'], season.get('label') or season['value']
            try:
                season_found, season_saved = self._scrape_season(player_id, depth, code, label)
            except CrawlCancelled:
                raise
            except FetchError as e:
                self.pacer.on_error()
                logger.error(f"Failed to fetch season {code} for player {player_id}: {e}")
                self.monitor.record_season(code, 0, failed=True)
                continue
            except Exception as e:
                logger.error(f"Failed to scrape season {code} for player {player_id}: {e}")
                self.monitor.record_season(code, 0, failed=True)
                continue
            found += season_found
            saved += season_saved

        self.db.mark_player_scraped(player_id)
        self.monitor.record_player(player_id, found)
        logger.info(f"Completed scraping player {player_id}: {found} matches found, {saved} new")
        return saved

    def _scrape_season(self, player_id: int, depth: int, code: str, label: str):
        logger.info(f"Scraping season {label} ({code}) for player {player_id}")
        self.db.ensure_season(code, label)

        self._pace()
        html = self.fetcher.fetch_season(player_id, code)
        self.pacer.on_success()

        matches = self.parser.parse_matches(html, player_id)
        logger.info(f"Season {label}: found {len(matches)} matches")
        self.monitor.record_season(code, len(matches))

        saved = 0
        for match in matches:
            try:
                if self._process_match(player_id, depth, code, match):
                    saved += 1
            except Exception as e:
                logger.error(f"Failed to save match for player {player_id} in tournament "
                             f"{match.tournament_id} ({match.round}): {e}")
        return len(matches), saved

    def _process_match(self, player_id: int, depth: int, season_code: str, match: ParsedMatch) -> bool:
        """Validate and store one match. Returns True if a new row was written."""
        validation = validate_match(match)
        self.monitor.record_match(match, validation)

        if not validation.is_valid:
            logger.warning(f"Skipping invalid match for player {player_id} in tournament "
                           f"{match.tournament_id}: {'; '.join(validation.errors)}")
            return False

        if not match.opponent_id:
            logger.warning(f"Skipping walkover without opponent for player {player_id} "
                           f"in tournament {match.tournament_id}")
            self.monitor.record_skipped()
            return False

        if match.opponent_id == player_id:
            logger.warning(f"Skipping match with player {player_id} on both sides "
                           f"in tournament {match.tournament_id}")
            self.monitor.record_skipped()
            return False

        self.db.upsert_tournament(match.tournament_id, {
            'name': match.tournament_name,
            'date': match.tournament_date,
            'season_code': season_code,
        })

        names = {
            match.opponent_id: match.opponent_name,
            match.partner_id: match.partner_name,
            match.opponent_partner_id: match.opponent_partner_name,
        }
        for pid in match.participant_ids():
            self.db.upsert_player(pid, {'name': names.get(pid)}, placeholder=True)
            self.frontier.enqueue(pid, priority=self.discovered_priority,
                                  depth=depth + 1, origin_id=player_id)

        if not self.db.insert_match(build_match_fields(player_id, match)):
            logger.debug(f"Duplicate match {player_id} vs {match.opponent_id} "
                         f"in tournament {match.tournament_id} ({match.round})")
            self.monitor.record_duplicate()
            return False

        logger.debug(f"Saved match: {player_id} vs {match.opponent_id} in tournament {match.tournament_id}")
        return True

    # --- Loop ---

    def _limit_reached(self) -> bool:
        done = self.players_scraped + self.players_failed
        return self.max_players >= 0 and done >= self.max_players

    def _record_error(self, message: str):
        if len(self.errors) < ERROR_CONFIG.get('max_errors_stored', 50):
            self.errors.append(message)

    def run(self) -> Dict:
        """
        Process the frontier until stopped.

        An unbounded run waits for new work when the queue is empty; a run
        bounded by max_players ends when the bound is hit or nothing is pending.
        """
        log_id = self.db.log_scrape_start()
        cancelled = False
        max_players = 'unlimited' if self.max_players < 0 else self.max_players
        logger.info(f"Starting crawl (max depth: {self.frontier.max_depth}, max players: {max_players})")

        try:
            while not self.stop_event.is_set():
                if self._limit_reached():
                    logger.info(f"Reached max players ({self.max_players}), stopping")
                    break

                item = self.frontier.dequeue_next()
                if item is None:
                    if self.max_players >= 0:
                        logger.info("Queue is empty, stopping")
                        break
                    logger.info("Queue is empty. Waiting...")
                    self.stop_event.wait(self.poll_interval)
                    continue

                try:
                    self.frontier.mark_processing(item.player_id)
                except QueueError as e:
                    logger.warning(str(e))
                    continue

                try:
                    self.matches_saved += self.scrape_player(item.player_id, item.depth)
                except CrawlCancelled:
                    logger.warning(f"Interrupted while scraping player {item.player_id}; "
                                   f"left in processing until reset-queue --stale")
                    cancelled = True
                    break
                except Exception as e:
                    logger.error(f"Failed to process player {item.player_id}: {e}")
                    self.frontier.mark_failed(item.player_id, str(e))
                    self.monitor.record_player(item.player_id, 0, failed=True)
                    self.players_failed += 1
                    self._record_error(f"{item.player_id}: {e}")
                    continue

                self.frontier.mark_completed(item.player_id)
                self.players_scraped += 1
                logger.info(f"Completed player {item.player_id} "
                            f"({self.players_scraped + self.players_failed} this run)")

            cancelled = cancelled or self.stop_event.is_set()
        finally:
            self.db.log_scrape_end(log_id, self.players_scraped, self.matches_saved,
                                   self.errors, success=not self.errors)
            self.monitor.print_report()

        return {
            'players_scraped': self.players_scraped,
            'players_failed': self.players_failed,
            'matches_saved': self.matches_saved,
            'errors': list(self.errors),
            'cancelled': cancelled,
        }
