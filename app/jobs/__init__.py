"""
Background Jobs Module

Handles scheduled tasks for:
- Expiring referral invites past their window
- Expiring printed pre-registration codes past their expiration date
"""

from app.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler, get_job_status
from app.jobs.referral_jobs import expire_stale_referrals

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "get_job_status",
    "expire_stale_referrals",
]
