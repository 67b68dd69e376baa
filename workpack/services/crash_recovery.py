"""
Crash-Recovery Sweep

Runs once at process start. An extraction that has been Started for longer
than the staleness window without completing is presumed to have died with
a previous process; its state is returned to NotStarted so it can be
triggered again.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from workpack.repositories.job_repository import JobRepository

logger = logging.getLogger(__name__)


def run_crash_recovery_sweep(
    repository: JobRepository,
    stale_after_minutes: int = 30,
    now: Optional[datetime] = None,
) -> int:
    """
    Reset stuck extractions.
    
    Args:
        repository: Job store
        stale_after_minutes: Age of a Started run that counts as crashed
        now: Current time (UTC); injectable for tests
        
    Returns:
        Number of jobs reset
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=stale_after_minutes)
    
    reset = repository.reset_stale_extractions(cutoff)
    if reset:
        logger.info(f"Crash recovery: reset {reset} stuck extraction(s) started before {cutoff.isoformat()}")
    else:
        logger.info("Crash recovery: no stuck extractions")
    return reset
