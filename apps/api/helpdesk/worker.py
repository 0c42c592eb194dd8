"""
Background worker for processing scheduled jobs.

Usage:
    python -m helpdesk.worker

The worker polls for pending jobs and processes them.
For production, run this as a separate process (e.g., systemd service, Docker container).
"""

import asyncio
import logging

from helpdesk.core.config import settings
from helpdesk.core.structured_logging import build_log_context
from helpdesk.db.session import SessionLocal
from helpdesk.jobs.registry import resolve_job_handler
from helpdesk.services import email_sender, job_service

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


async def process_job(db, job) -> None:
    """Process a single job based on its type."""
    logger.info(
        "Processing job %s (type=%s, attempt=%s)",
        job.id,
        job.job_type,
        job.attempts,
        extra=build_log_context(job_id=str(job.id)),
    )
    handler = resolve_job_handler(job.job_type)
    await handler(db, job)


async def process_pending_jobs(db, limit: int | None = None) -> int:
    """Run one batch of due jobs. Returns the number of jobs picked up."""
    jobs = job_service.get_pending_jobs(db, limit=limit or settings.WORKER_BATCH_SIZE)
    if jobs:
        logger.info("Found %s pending jobs", len(jobs))

    for job in jobs:
        try:
            job_service.mark_job_running(db, job)
            await process_job(db, job)
            job_service.mark_job_completed(db, job)
            logger.info("Job %s completed successfully", job.id)
        except Exception as e:
            db.rollback()
            job_service.mark_job_failed(db, job, f"{type(e).__name__}: {e}"[:1000])
            logger.error("Job %s failed: %s", job.id, type(e).__name__)
    return len(jobs)


async def worker_loop() -> None:
    """Main worker loop - polls for and processes pending jobs."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)",
        settings.WORKER_POLL_INTERVAL,
        settings.WORKER_BATCH_SIZE,
    )
    if not email_sender.is_configured():
        logger.warning("RESEND_API_KEY not set - emails will be logged but not sent")

    while True:
        with SessionLocal() as db:
            try:
                await process_pending_jobs(db)
            except Exception as e:
                logger.error("Error in worker loop: %s", type(e).__name__)

        await asyncio.sleep(settings.WORKER_POLL_INTERVAL)


if __name__ == "__main__":
    asyncio.run(worker_loop())
