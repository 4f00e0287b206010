#!/usr/bin/env python3
"""WishCart Pipeline CLI — run jobs and print reports without the API server.

Usage:
  python scripts/pipeline_cli.py init                 # Create database tables
  python scripts/pipeline_cli.py run <job>            # Run one pipeline job now
  python scripts/pipeline_cli.py jobs                 # List pipeline jobs
  python scripts/pipeline_cli.py report               # Print analytics + queue report
"""
import asyncio
import sys
import os
from dataclasses import asdict

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def cmd_init():
    from src.db.engine import engine
    from src.db.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("✅ Tables ready")


async def cmd_run():
    from src.services.scheduler import JOBS, trigger_job

    if len(sys.argv) < 3 or sys.argv[2] not in JOBS:
        print(f"Jobs: {', '.join(JOBS)}")
        sys.exit(1)
    result = await trigger_job(sys.argv[2])
    if result is None:
        print(f"⚠️  {sys.argv[2]} did not complete (see log)")
        sys.exit(2)
    for key, value in asdict(result).items():
        print(f"  {key:<22} {value}")


async def cmd_jobs():
    from src.services.scheduler import JOBS

    for name, spec in JOBS.items():
        print(f"  {name:<24} {spec.label}")


async def cmd_report():
    from src.db.engine import async_session
    from src.services.notifications import NotificationQueue
    from src.services.wishlist_analytics import WishlistAnalytics

    async with async_session() as session:
        overview = await WishlistAnalytics(session).get_overview()
        funnel = await WishlistAnalytics(session).get_conversion_funnel()
        stats = await NotificationQueue(session).get_statistics()

    print("=" * 60)
    print("  WishCart Pipeline Report")
    print("=" * 60)
    print()
    print(f"  📋 Wishlists")
    print(f"     Active: {overview['total_wishlists']:>8,}    Items: {overview['total_items']:>8,}")
    print(f"     Unique products: {overview['unique_products']:,}  |  Avg items: {overview['avg_items_per_wishlist']}")
    print()
    print(f"  📊 Funnel")
    stages = {k: funnel[k] for k in ("added_to_wishlist", "clicked", "added_to_cart", "purchased")}
    max_val = max(stages.values()) or 1
    for stage, count in stages.items():
        bar_len = int(count / max_val * 30)
        print(f"     {stage:<20} {'█' * bar_len} {count:,}")
    print(f"     Conversion: {funnel['overall_conversion_rate']}%")
    print()
    print(f"  ✉️  Notifications")
    print(f"     Pending: {stats['pending_count']:,}  Sent: {stats['sent_count']:,}  "
          f"Failed: {stats['failed_count']:,}  Cancelled: {stats['cancelled_count']:,}")
    print(f"     Open rate: {stats['open_rate']}%  |  Click rate: {stats['click_rate']}%")
    print()
    print("=" * 60)


COMMANDS = {
    "init": cmd_init,
    "run": cmd_run,
    "jobs": cmd_jobs,
    "report": cmd_report,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)
    from src.logging_config import setup_logging
    setup_logging()
    asyncio.run(COMMANDS[sys.argv[1]]())


if __name__ == "__main__":
    main()
