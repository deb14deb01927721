#!/usr/bin/env python3
"""
Run the monitor from the command line

Usage:
    python3 run_cycle.py --once
    python3 run_cycle.py --case 804692 --dry-run
"""

import argparse
import asyncio
import json
import logging
import sys

from case_source import CaseSourceClient
from elasticsearch_client import CaseStore, connect_to_elasticsearch
from errors import MonitorError
from messaging_client import WhatsAppClient
from monitor import CaseMonitor

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_once(monitor: CaseMonitor) -> int:
    result = await monitor.run_once()
    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0 if result.status == "completed" else 1


async def preview_case(monitor: CaseMonitor, cino: str) -> int:
    snapshot, changes = await monitor.preview_case(cino)

    if snapshot is None:
        logger.error(f"❌ Case {cino} not found at source")
        return 1

    if changes is None:
        logger.info(f"🆕 Case {cino} has no stored snapshot yet")
        print(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))
        return 0

    print(json.dumps(changes.to_dict(), indent=2, ensure_ascii=False))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the court case monitor")
    parser.add_argument("--once", action="store_true", help="Run one full monitoring cycle")
    parser.add_argument("--case", help="CINO of a single case to check")
    parser.add_argument("--dry-run", action="store_true", help="With --case: show changes without saving or notifying")
    args = parser.parse_args()

    if not args.once and not args.case:
        parser.error("one of --once or --case is required")
    if args.case and not args.dry_run:
        parser.error("--case is only supported together with --dry-run")

    es = connect_to_elasticsearch(retry=True)
    if not es:
        logger.error("❌ Failed to connect to Elasticsearch")
        return 1

    store = CaseStore(es)
    monitor = CaseMonitor(source=CaseSourceClient(), store=store, transport=WhatsAppClient())

    try:
        if args.case:
            return asyncio.run(preview_case(monitor, args.case.strip()))
        store.ensure_indices()
        return asyncio.run(run_once(monitor))
    except MonitorError as e:
        logger.error(f"❌ {e.classification}: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
