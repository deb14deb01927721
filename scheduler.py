#!/usr/bin/env python3
"""
Batch Fetch Scheduler
Fetches fresh data for candidate cases in rate-limited batches and
detects changes against the persisted snapshots
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence

from change_detector import ChangeDetector
from config import BATCH_SIZE, BATCH_DELAY
from errors import FetchError, InvalidInputError
from fingerprint import fingerprint
from models import CaseChange

logger = logging.getLogger(__name__)


def create_batches(items: Sequence, batch_size: int) -> List[List]:
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]


class BatchScheduler:
    """
    Processes candidates batch by batch, sequentially inside a batch

    Per-case failures are logged and treated as "no change"; they never
    abort the batch or the cycle.
    """

    def __init__(
        self,
        source,
        store,
        detector: Optional[ChangeDetector] = None,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.source = source
        self.store = store
        self.detector = detector or ChangeDetector()
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.sleep = sleep
        self.failed_cases: List[str] = []

    async def process_candidates(
        self,
        candidates: Sequence[str],
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ) -> List[CaseChange]:
        """
        Fetch and diff every candidate

        Args:
            candidates: Case identifiers in processing order
            batch_size: Overrides the configured batch size
            batch_delay: Overrides the configured delay between batches (0 disables it)

        Returns:
            One CaseChange per case where a change was detected
        """
        batch_size = self.batch_size if batch_size is None else batch_size
        batch_delay = self.batch_delay if batch_delay is None else batch_delay

        self.failed_cases = []
        all_changes = []
        batches = create_batches(list(candidates), batch_size)

        for index, batch in enumerate(batches, 1):
            logger.info(f"Processing batch {index}/{len(batches)} ({len(batch)} cases)")
            all_changes.extend(await self.process_batch(batch))

            # Be polite to the upstream source
            if index < len(batches) and batch_delay > 0:
                await self.sleep(batch_delay)

        logger.info(
            f"Checked {len(candidates)} cases: {len(all_changes)} changed, "
            f"{len(self.failed_cases)} failed"
        )
        return all_changes

    async def process_batch(self, batch: Sequence[str]) -> List[CaseChange]:
        batch_changes = []

        for cino in batch:
            try:
                change = await self.process_case(cino)
            except FetchError as e:
                logger.error(f"❌ Could not fetch case {cino}: {e}")
                self.failed_cases.append(cino)
                continue
            except InvalidInputError as e:
                logger.error(f"❌ Skipping case {cino}, invalid snapshot: {e}")
                self.failed_cases.append(cino)
                continue
            except Exception as e:
                logger.error(f"❌ Error processing case {cino}: {e}")
                self.failed_cases.append(cino)
                continue

            if change is not None:
                batch_changes.append(change)

        return batch_changes

    async def process_case(self, cino: str) -> Optional[CaseChange]:
        """Fetch one case, diff it and persist it when it changed"""
        new_snapshot = await asyncio.to_thread(self.source.fetch_case, cino)
        if new_snapshot is None:
            logger.warning(f"📭 No data received for case {cino}")
            return None

        await asyncio.to_thread(self.store.record_check, cino)

        old_snapshot = await asyncio.to_thread(self.store.load_snapshot, cino)
        new_fingerprint = fingerprint(new_snapshot)

        if old_snapshot is None:
            logger.info(f"🆕 First snapshot for case {cino}, storing baseline")
            await asyncio.to_thread(self.store.save_snapshot, cino, new_snapshot, new_fingerprint, None)
            return None

        changes = self.detector.detect_changes(old_snapshot, new_snapshot)
        if not changes.has_changes:
            logger.debug(f"No changes for case {cino}")
            return None

        await asyncio.to_thread(self.store.save_snapshot, cino, new_snapshot, new_fingerprint, changes)
        logger.info(
            f"📝 Case {cino} changed ({changes.notification_priority}): {', '.join(changes.changed_fields)}"
        )
        return CaseChange(cino=cino, changes=changes, snapshot=new_snapshot, fingerprint=new_fingerprint)
