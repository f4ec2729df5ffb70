# h2h_scraper/frontier.py

import logging
from typing import Dict, List, Optional

from h2h_scraper.config import CRAWL_CONFIG
from h2h_scraper.models import QueueItem, QueueStatus

logger = logging.getLogger(__name__)


class QueueError(Exception):
    """Raised when a queue item cannot make the requested status transition."""


class CrawlFrontier:
    """
    Persistent, priority-ordered crawl queue of players.

    - At most one item per player; re-adding leaves it alone unless forced
    - Highest priority first, FIFO within a priority
    - Depth bound enforced at enqueue time keeps the expansion finite
    - pending -> processing -> completed | failed; failed items only return
      to pending through an explicit operator reset
    """

    def __init__(self, db, max_depth: int = None):
        self.db = db
        self.max_depth = CRAWL_CONFIG['max_depth'] if max_depth is None else max_depth

    def enqueue(self, player_id: int, priority: int = 0, depth: int = 0,
                origin_id: Optional[int] = None, force_reset: bool = False) -> bool:
        """Add a player. Returns True if an item was created or reset."""
        if depth < 0:
            raise ValueError(f"Depth must be non-negative, got {depth}")

        if self.max_depth >= 0 and depth > self.max_depth:
            logger.debug(f"Skipping player {player_id}: depth {depth} exceeds max depth {self.max_depth}")
            return False

        if force_reset:
            self.db.reset_queue_item(player_id, priority, depth, origin_id)
            logger.info(f"Force added player {player_id} to queue (priority {priority}, depth {depth})")
            return True

        created = self.db.insert_queue_item(player_id, priority, depth, origin_id)
        if created:
            logger.debug(f"Added player {player_id} to queue (priority {priority}, depth {depth}, "
                         f"source {origin_id or 'manual'})")
        return created

    def dequeue_next(self) -> Optional[QueueItem]:
        """Highest-priority pending item, or None if nothing is pending"""
        row = self.db.next_pending_queue_item()
        return QueueItem.from_row(row) if row else None

    def get(self, player_id: int) -> Optional[QueueItem]:
        row = self.db.get_queue_item(player_id)
        return QueueItem.from_row(row) if row else None

    def mark_processing(self, player_id: int):
        """Claim an item; increments attempts and stamps the attempt time"""
        if not self.db.set_queue_processing(player_id):
            raise QueueError(f"Player {player_id} is not pending, cannot mark processing")

    def mark_completed(self, player_id: int):
        if not self.db.set_queue_finished(player_id, QueueStatus.COMPLETED.value):
            raise QueueError(f"Player {player_id} is not processing, cannot mark completed")

    def mark_failed(self, player_id: int, reason: str):
        if not self.db.set_queue_finished(player_id, QueueStatus.FAILED.value, reason):
            raise QueueError(f"Player {player_id} is not processing, cannot mark failed")

    # --- Operator actions ---

    def reset_failed(self) -> int:
        """Return every failed item to pending"""
        count = self.db.reset_queue_status(QueueStatus.FAILED.value)
        logger.info(f"Reset {count} failed queue items")
        return count

    def reset_stale_processing(self) -> int:
        """Return items left in processing (e.g. by an interrupted run) to pending"""
        count = self.db.reset_queue_status(QueueStatus.PROCESSING.value)
        logger.info(f"Reset {count} stale processing queue items")
        return count

    def clear(self) -> int:
        count = self.db.clear_queue()
        logger.info(f"Cleared entire scrape queue. Deleted {count} items.")
        return count

    # --- Reporting ---

    def items(self, limit: int = None) -> List[QueueItem]:
        return [QueueItem.from_row(r) for r in self.db.list_queue_items(limit)]

    def summary(self) -> Dict:
        by_status = {s.value: 0 for s in QueueStatus}
        by_status.update(self.db.queue_counts('status'))
        by_depth = dict(sorted(self.db.queue_counts('depth').items()))
        return {
            'total': sum(by_status.values()),
            'by_status': by_status,
            'by_depth': by_depth,
        }

    def get_status_report(self) -> str:
        """Get human-readable status report"""
        summary = self.summary()
        total = summary['total']

        if total == 0:
            return (
                "\n========================================\n"
                "SCRAPE QUEUE STATUS\n"
                "========================================\n"
                "Queue is empty. Add a player with 'run <player_id>' or 'seed'.\n"
                "========================================\n"
            )

        status_lines = '\n'.join(f"  {status}: {count}" for status, count in summary['by_status'].items())
        depth_lines = '\n'.join(f"  Depth {depth}: {count} players" for depth, count in summary['by_depth'].items())
        done = summary['by_status'][QueueStatus.COMPLETED.value] + summary['by_status'][QueueStatus.FAILED.value]
        pct = 100 * done / total
        max_depth = 'unlimited' if self.max_depth < 0 else self.max_depth

        first_items = '\n'.join(
            f"  Player {item.player_id}: depth={item.depth}, source={item.source_player_id or 'manual'}, "
            f"status={item.status.value}, attempts={item.attempts}"
            for item in self.items(limit=10)
        )

        report = f"""
========================================
SCRAPE QUEUE STATUS
========================================
Total items: {total} ({done} finished, {pct:.1f}%)
Max depth: {max_depth}

By Status:
{status_lines}

By Depth:
{depth_lines}

Next items:
{first_items}
========================================
"""
        return report
