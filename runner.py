"""
Background job scheduler for the TrendMint agent
Polls mentions and trends on fixed intervals and feeds them to the pipeline
"""

import asyncio
import traceback
from datetime import datetime, UTC
from typing import Dict, Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_config, subscribe_to_updates
from services.logging_utils import get_logger
from services.orchestrator import Orchestrator

logger = get_logger(__name__)

# Global scheduler
scheduler: Optional[AsyncIOScheduler] = None
start_time = datetime.now(UTC)

config = get_config()

# Built lazily; importing this module must not validate config
orchestrator: Optional[Orchestrator] = None


def get_orchestrator() -> Orchestrator:
    global orchestrator

    if orchestrator is None:
        orchestrator = Orchestrator(config)
    return orchestrator


def _on_config_update(cfg, changes: Dict[str, Any]) -> None:
    if "LIVE" in changes:
        logger.info("Runner observed LIVE toggle -> %s", "on" if cfg.LIVE else "off")


_unsubscribe = subscribe_to_updates(_on_config_update)


async def start_scheduler():
    """Start the polling loops"""
    global scheduler

    if scheduler and scheduler.running:
        return

    pipeline = get_orchestrator()
    pipeline.start()

    scheduler = AsyncIOScheduler()
    _add_jobs()
    scheduler.start()
    logger.info("Background scheduler started")


async def stop_scheduler():
    """Stop the polling loops; in-flight calls are left to finish"""
    if orchestrator is not None:
        orchestrator.stop()

    if scheduler and scheduler.running:
        scheduler.shutdown(wait=False)
        # AsyncIOScheduler applies the shutdown on the next loop iteration
        await asyncio.sleep(0)
        logger.info("Background scheduler stopped")


def _add_jobs():
    now = datetime.now(UTC)

    scheduler.add_job(
        mention_poll_job,
        IntervalTrigger(seconds=config.MENTION_POLL_SECONDS),
        id='poll_mentions',
        next_run_time=now,
        max_instances=1,
        coalesce=True
    )

    scheduler.add_job(
        trend_poll_job,
        IntervalTrigger(seconds=config.TREND_POLL_SECONDS),
        id='poll_trends',
        next_run_time=now,
        max_instances=1,
        coalesce=True
    )

    scheduler.add_job(
        reply_window_job,
        IntervalTrigger(hours=1),
        id='reply_window_reset',
        max_instances=1,
        coalesce=True
    )


async def mention_poll_job():
    """Process new mentions of the bot account"""
    try:
        outcomes = await get_orchestrator().poll_mentions()
        if outcomes:
            replies = sum(1 for o in outcomes if o.reply and o.reply.success)
            mints = sum(1 for o in outcomes if o.mint and o.mint.success)
            logger.info(f"Mention poll processed {len(outcomes)} posts: {replies} replies, {mints} mints")
    except Exception as e:
        logger.error(f"Mention poll job failed: {e}")
        traceback.print_exc()


async def trend_poll_job():
    """Process posts found under trending topics"""
    try:
        outcomes = await get_orchestrator().poll_trends()
        if outcomes:
            mints = sum(1 for o in outcomes if o.mint and o.mint.success)
            logger.info(f"Trend poll processed {len(outcomes)} posts: {mints} mints")
    except Exception as e:
        logger.error(f"Trend poll job failed: {e}")
        traceback.print_exc()


async def reply_window_job():
    """Hourly reset of the reply budget, through the same check replies use"""
    try:
        await get_orchestrator().reset_reply_window()
    except Exception as e:
        logger.error(f"Reply window job failed: {e}")


def get_uptime() -> str:
    """Get system uptime"""
    uptime = datetime.now(UTC) - start_time
    hours = int(uptime.total_seconds() // 3600)
    minutes = int((uptime.total_seconds() % 3600) // 60)
    return f"{hours}h {minutes}m"


def get_scheduler_status() -> Dict[str, Any]:
    """Get scheduler status"""
    if not scheduler:
        return {"running": False}

    jobs = []
    for job in scheduler.get_jobs():
        next_run = job.next_run_time
        jobs.append({
            "id": job.id,
            "next_run": next_run.isoformat() if next_run else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
        "uptime": get_uptime()
    }
