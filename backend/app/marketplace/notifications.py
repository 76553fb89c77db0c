"""In-app notifications raised by job lifecycle transitions."""

from supabase import Client

from chowkar.marketplace.negotiation import Job

from ..database import NOTIFICATIONS_TABLE
from ..logging_config import get_logger

logger = get_logger("chowkar.notifications")


def review_prompt_hook(db: Client):
    """Build a hook that asks both parties of a completed job for a review."""

    def prompt(job: Job) -> None:
        worker = job.accepted_bid
        if worker is None:
            return
        rows = [
            {
                "user_id": job.poster_id,
                "title": "Job completed",
                "message": f"How did {worker.worker_name or 'the worker'} do on \"{job.title}\"? Leave a review.",
                "type": "SUCCESS",
                "related_job_id": job.id,
            },
            {
                "user_id": worker.worker_id,
                "title": "Job completed",
                "message": f"\"{job.title}\" is complete. Rate your experience with the poster.",
                "type": "SUCCESS",
                "related_job_id": job.id,
            },
        ]
        db.table(NOTIFICATIONS_TABLE).insert(rows).execute()
        logger.info(f"Review prompts sent | job={job.id}")

    return prompt
