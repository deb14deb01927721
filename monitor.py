#!/usr/bin/env python3
"""
Cycle orchestration and the background monitoring task
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from change_detector import ChangeDetector
from config import (
    ADMIN_NUMBERS,
    BATCH_SIZE,
    BATCH_DELAY,
    MESSAGE_DELAY,
    CHECK_INTERVAL,
    CASE_CHECK_INTERVAL_MINUTES,
)
from dispatcher import NotificationDispatcher
from errors import CycleFatalError, NotFoundError
from fingerprint import fingerprint
from message_builder import build_error_alert
from models import CaseChange, CaseSnapshot, ChangeSet, CycleResult, NotificationOutcome, RunState, utcnow
from scheduler import BatchScheduler

logger = logging.getLogger(__name__)

PRIORITIES = ("urgent", "high", "medium", "low")


def generate_summary(
    candidates: Sequence[str],
    changes: Sequence[CaseChange],
    outcomes: Sequence[NotificationOutcome],
    failed_cases: Sequence[str] = (),
) -> Dict[str, Any]:
    summary = {
        "total_cases_checked": len(candidates),
        "failed_cases": len(failed_cases),
        "total_changes": len(changes),
        "critical_changes": 0,
        "notifications_sent": 0,
        "notifications_failed": 0,
        "changes_by_priority": {priority: 0 for priority in PRIORITIES},
    }

    for change in changes:
        priority = change.changes.notification_priority
        if priority in summary["changes_by_priority"]:
            summary["changes_by_priority"][priority] += 1
        if change.changes.has_critical_changes:
            summary["critical_changes"] += 1

    for outcome in outcomes:
        if outcome.success:
            summary["notifications_sent"] += 1
        else:
            summary["notifications_failed"] += 1

    return summary


class CaseMonitor:
    """
    Drives monitoring cycles

    Only one cycle runs at a time; a trigger that arrives while a cycle is
    in flight is dropped and reported as skipped. Collaborators are
    injected so the monitor can be built per process or per test.
    """

    def __init__(
        self,
        source,
        store,
        transport,
        detector: Optional[ChangeDetector] = None,
        batch_size: int = BATCH_SIZE,
        batch_delay: float = BATCH_DELAY,
        message_delay: float = MESSAGE_DELAY,
        check_interval: float = CHECK_INTERVAL,
        case_check_interval_minutes: int = CASE_CHECK_INTERVAL_MINUTES,
        admin_numbers: Optional[List[str]] = None,
        sleep=asyncio.sleep,
    ):
        self.source = source
        self.store = store
        self.transport = transport
        self.detector = detector or ChangeDetector()
        self.scheduler = BatchScheduler(
            source, store, self.detector,
            batch_size=batch_size, batch_delay=batch_delay, sleep=sleep,
        )
        self.dispatcher = NotificationDispatcher(store, transport, message_delay=message_delay, sleep=sleep)
        self.check_interval = check_interval
        self.case_check_interval_minutes = case_check_interval_minutes
        self.admin_numbers = list(ADMIN_NUMBERS if admin_numbers is None else admin_numbers)
        self.state = RunState()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    # === Cycle ===

    async def run_once(self) -> CycleResult:
        """Run one complete monitoring cycle"""
        if self.state.is_running:
            logger.warning("⚠️ Monitoring cycle already in progress, skipping...")
            return CycleResult(status="skipped", reason="already_running")

        self.state.is_running = True
        self.state.run_count += 1
        start_time = utcnow()
        started = time.monotonic()

        logger.info(f"🔄 Starting monitoring cycle #{self.state.run_count}")

        try:
            candidates = await asyncio.to_thread(
                self.store.find_candidate_cases, self.case_check_interval_minutes
            )

            if not candidates:
                logger.info("📭 No cases to check")
                summary = generate_summary([], [], [])
                self._mark_success(start_time)
                return CycleResult(
                    status="completed",
                    reason="no_cases",
                    summary=summary,
                    duration=time.monotonic() - started,
                )

            logger.info(f"Found {len(candidates)} cases to check")

            changes = await self.scheduler.process_candidates(candidates)
            outcomes = await self.dispatcher.dispatch(changes)

            summary = generate_summary(candidates, changes, outcomes, self.scheduler.failed_cases)
            duration = time.monotonic() - started
            self.log_cycle_summary(summary, duration)

            self._mark_success(start_time)
            return CycleResult(
                status="completed",
                changes=changes,
                notifications=outcomes,
                summary=summary,
                duration=duration,
            )

        except Exception as e:
            fatal = e if isinstance(e, CycleFatalError) else CycleFatalError(str(e))
            self.state.error_count += 1
            self.state.last_run_status = "error"
            logger.error(f"❌ Monitoring cycle #{self.state.run_count} failed: {fatal}")

            await self.send_error_notification(fatal)

            return CycleResult(status="error", error=str(fatal), duration=time.monotonic() - started)

        finally:
            self.state.is_running = False

    def _mark_success(self, start_time) -> None:
        self.state.last_run_status = "success"
        self.state.last_run_time = start_time

    def log_cycle_summary(self, summary: Dict[str, Any], duration: float) -> None:
        logger.info(f"✅ Monitoring cycle #{self.state.run_count} completed in {duration:.2f}s")
        logger.info(f"- Cases checked: {summary['total_cases_checked']} ({summary['failed_cases']} failed)")
        logger.info(f"- Total changes: {summary['total_changes']}")
        logger.info(f"- Critical changes: {summary['critical_changes']}")
        logger.info(f"- Notifications sent: {summary['notifications_sent']}")
        logger.info(f"- Notifications failed: {summary['notifications_failed']}")
        logger.info(f"- Changes by priority: {summary['changes_by_priority']}")

    async def send_error_notification(self, error: BaseException) -> None:
        """Best-effort admin alert; failures here are logged and dropped"""
        if not self.admin_numbers:
            return

        message = build_error_alert(error, self.state.run_count)
        for number in self.admin_numbers:
            try:
                result = await asyncio.to_thread(self.transport.send, [number], message)
            except Exception as e:
                logger.error(f"❌ Failed to send error notification to {number}: {e}")
                continue
            if not result.success:
                logger.error(f"❌ Admin alert to {number} failed: {result.error}")

    # === Background scheduling ===

    @property
    def is_scheduled(self) -> bool:
        return (
            self._task is not None
            and not self._task.done()
            and self._stop_event is not None
            and not self._stop_event.is_set()
        )

    def start(self, interval: Optional[float] = None) -> bool:
        """Run a cycle every interval seconds until stop(); must be called from a running loop"""
        if self.is_scheduled:
            logger.warning("⚠️ Monitoring is already scheduled")
            return False

        if interval:
            self.check_interval = interval

        self._stop_event = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._monitor_loop(self._stop_event))
        logger.info(f"✅ Monitoring started, interval {self.check_interval} seconds")
        return True

    def stop(self) -> bool:
        """Stop scheduling; a cycle already in flight runs to completion"""
        if not self.is_scheduled:
            return False

        self._stop_event.set()
        logger.info("🛑 Monitoring stop requested")
        return True

    async def _monitor_loop(self, stop_event: asyncio.Event) -> None:
        logger.info("🔄 Starting continuous monitoring...")

        while not stop_event.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                continue

        logger.info("🛑 Monitoring stopped")

    # === Status and configuration ===

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self.state.is_running,
            "is_scheduled": self.is_scheduled,
            "last_run_time": self.state.last_run_time.isoformat() if self.state.last_run_time else None,
            "last_run_status": self.state.last_run_status,
            "run_count": self.state.run_count,
            "error_count": self.state.error_count,
            "check_interval_seconds": self.check_interval,
            "batch_size": self.scheduler.batch_size,
            "batch_delay": self.scheduler.batch_delay,
            "message_delay": self.dispatcher.message_delay,
        }

    def update_config(
        self,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        message_delay: Optional[float] = None,
    ) -> Dict[str, Any]:
        if batch_size:
            self.scheduler.batch_size = batch_size
        if batch_delay is not None:
            self.scheduler.batch_delay = batch_delay
        if message_delay is not None:
            self.dispatcher.message_delay = message_delay

        logger.info(f"Monitoring configuration updated: {self.get_status()}")
        return self.get_status()

    # === Case management ===

    async def add_case(self, cino: str) -> Dict[str, Any]:
        """Fetch a case and store it as the baseline for future cycles"""
        snapshot = await asyncio.to_thread(self.source.fetch_case, cino)
        if snapshot is None:
            raise NotFoundError(f"Case {cino} not found at source")

        return await asyncio.to_thread(self.store.create_case, snapshot, fingerprint(snapshot))

    async def remove_case(self, cino: str) -> int:
        return await asyncio.to_thread(self.store.delete_case, cino)

    async def preview_case(self, cino: str) -> Tuple[Optional[CaseSnapshot], Optional[ChangeSet]]:
        """Fetch and diff one case without saving or notifying"""
        new_snapshot = await asyncio.to_thread(self.source.fetch_case, cino)
        if new_snapshot is None:
            return None, None

        old_snapshot = await asyncio.to_thread(self.store.load_snapshot, cino)
        if old_snapshot is None:
            return new_snapshot, None

        return new_snapshot, self.detector.detect_changes(old_snapshot, new_snapshot)
