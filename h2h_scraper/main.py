# h2h_scraper/main.py

import argparse
import logging
import signal
import sys
import threading

from h2h_scraper.config import CRAWL_CONFIG, LOG_FILE, LOG_LEVEL, PACING_CONFIG, SEED_PLAYERS
from h2h_scraper.crawler import CrawlOrchestrator
from h2h_scraper.database import DatabaseManager
from h2h_scraper.frontier import CrawlFrontier
from h2h_scraper.pacer import AdaptivePacer
from h2h_scraper.request_handler import ProtectedRequestHandler
from h2h_scraper.validators.integrity import IntegrityAuditor


def log_handlers(log_file: str = LOG_FILE):
    """File handler (relative paths resolve against the working directory) plus stderr"""
    return [
        logging.FileHandler(log_file),
        logging.StreamHandler()
    ]


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(message)s',
    handlers=log_handlers()
)
logger = logging.getLogger(__name__)


class H2HScraper:
    def __init__(self, max_depth: int = None):
        self.db = DatabaseManager()
        max_depth = CRAWL_CONFIG['max_depth'] if max_depth is None else max_depth
        self.frontier = CrawlFrontier(self.db, max_depth)

    def init_db(self):
        self.db.init_schema()
        print("Database schema created.")

    def seed(self, priority: int):
        """Queue the configured seed players at depth 0"""
        for player in SEED_PLAYERS:
            self.db.upsert_player(player['id'], {'name': player['name']}, placeholder=True)
            if self.frontier.enqueue(player['id'], priority=priority, depth=0):
                logger.info(f"Seeded {player['name']} ({player['id']})")
            else:
                logger.info(f"{player['name']} ({player['id']}) already queued")

    def add_players(self, player_ids, priority: int, force: bool):
        """Manually added players start at depth 0"""
        for player_id in player_ids:
            self.db.upsert_player(player_id, {'name': None}, placeholder=True)
            added = self.frontier.enqueue(player_id, priority=priority, depth=0, force_reset=force)
            if added:
                logger.info(f"Added player {player_id} to queue with depth 0")
            else:
                logger.info(f"Player {player_id} already in queue (use --force to re-scrape)")

    def run(self, max_players: int, base_delay: float = None):
        stop_event = threading.Event()

        def handle_sigint(signum, frame):
            logger.warning("Interrupted by user, shutting down gracefully...")
            stop_event.set()

        previous = signal.signal(signal.SIGINT, handle_sigint)
        fetcher = ProtectedRequestHandler()
        orchestrator = CrawlOrchestrator(
            self.db, fetcher,
            frontier=self.frontier,
            pacer=AdaptivePacer(base_delay=base_delay),
            max_players=max_players,
            stop_event=stop_event,
        )
        try:
            result = orchestrator.run()
        finally:
            signal.signal(signal.SIGINT, previous)
            fetcher.close()

        logger.info(f"Crawl finished. Players: {result['players_scraped']} scraped, "
                    f"{result['players_failed']} failed; {result['matches_saved']} new matches"
                    f"{' (interrupted)' if result['cancelled'] else ''}")
        return result

    def status(self):
        print(self.frontier.get_status_report())

    def reset_queue(self, stale: bool):
        if stale:
            count = self.frontier.reset_stale_processing()
            print(f"Reset {count} stale processing items to pending.")
        else:
            count = self.frontier.reset_failed()
            print(f"Reset {count} failed items to pending.")

    def clear_queue(self, confirmed: bool):
        if not confirmed:
            print("Refusing to clear the queue without --yes.")
            return
        count = self.frontier.clear()
        print(f"Cleared entire scrape queue. Deleted {count} items.")

    def audit(self, player_id: int = None, tournament_id: int = None, limit: int = 100,
              as_json: bool = False) -> bool:
        """Print the integrity report; returns False if any ERROR was found"""
        report = IntegrityAuditor(self.db).audit_all(player_id=player_id, tournament_id=tournament_id,
                                                     limit=limit)
        print(report.to_json() if as_json else report.format_report())
        return not report.errors

    def cleanup(self, execute: bool):
        result = IntegrityAuditor(self.db).repair(execute=execute)
        if not result['to_delete']:
            print("No duplicate or self-referencing matches found.")
            return
        print(f"Duplicate rows: {len(result['duplicate_ids'])}")
        print(f"Self-matches:   {len(result['self_match_ids'])}")
        if result['dry_run']:
            print(f"DRY RUN - would delete {len(result['to_delete'])} matches. Use --execute to delete.")
        else:
            print(f"Deleted {result['deleted']} matches.")

    def close(self):
        self.db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description='Czech Tennis Head-to-Head Scraper')
    parser.add_argument('command',
                        choices=['init-db', 'seed', 'run', 'status', 'reset-queue',
                                 'clear-queue', 'audit', 'cleanup'],
                        help='init-db=create tables, seed=queue seed players, run=crawl the queue, '
                             'status=queue report, reset-queue=failed back to pending, '
                             'clear-queue=delete all queue items, audit=integrity report, '
                             'cleanup=delete duplicate matches')
    parser.add_argument('player_ids', nargs='*', type=int,
                        help='Players to add to the queue before running (depth 0)')
    parser.add_argument('--max-depth', type=int, default=None,
                        help='Maximum crawl depth (-1 = unlimited, 0 = only given players, 1 = + opponents)')
    parser.add_argument('--max-players', type=int, default=CRAWL_CONFIG['max_players'],
                        help='Stop after N players this run (-1 = unlimited)')
    parser.add_argument('--base-delay', type=float, default=PACING_CONFIG['base_delay'],
                        help='Base delay between requests in milliseconds')
    parser.add_argument('--priority', type=int, default=CRAWL_CONFIG['seed_priority'],
                        help='Queue priority for seeded/added players')
    parser.add_argument('--force', '-f', action='store_true',
                        help='Reset already-queued players to pending')
    parser.add_argument('--stale', action='store_true',
                        help='reset-queue: reset items stuck in processing instead of failed ones')
    parser.add_argument('--yes', action='store_true', help='clear-queue: confirm deletion')
    parser.add_argument('--player', type=int, help='audit: only this player')
    parser.add_argument('--tournament', type=int, help='audit: only this tournament')
    parser.add_argument('--limit', type=int, default=100,
                        help='audit: number of most active players to check')
    parser.add_argument('--json', action='store_true', help='audit: print JSON')
    parser.add_argument('--execute', action='store_true',
                        help='cleanup: actually delete (default is a dry run)')

    args = parser.parse_args(argv)

    scraper = H2HScraper(max_depth=args.max_depth)
    exit_code = 0
    try:
        if args.command == 'init-db':
            scraper.init_db()
        elif args.command == 'seed':
            scraper.seed(priority=args.priority)
        elif args.command == 'run':
            if args.player_ids:
                scraper.add_players(args.player_ids, priority=args.priority, force=args.force)
            scraper.run(max_players=args.max_players, base_delay=args.base_delay)
        elif args.command == 'status':
            scraper.status()
        elif args.command == 'reset-queue':
            scraper.reset_queue(stale=args.stale)
        elif args.command == 'clear-queue':
            scraper.clear_queue(confirmed=args.yes)
        elif args.command == 'audit':
            if not scraper.audit(args.player, args.tournament, args.limit, args.json):
                exit_code = 1
        elif args.command == 'cleanup':
            scraper.cleanup(execute=args.execute)
    finally:
        scraper.close()

    return exit_code


if __name__ == '__main__':
    sys.exit(main())
