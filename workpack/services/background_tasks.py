"""
Background Tasks - detached extraction runs.

The upload request is acknowledged before any page work happens; the
orchestrator then runs through FastAPI's BackgroundTasks (sync callables go
to the threadpool).
"""

import logging
from typing import Callable, Optional

from workpack.services.extraction_orchestrator import ExtractionOrchestrator

logger = logging.getLogger(__name__)


class ExtractionTaskRunner:
    """
    Schedules extraction runs after the response is sent.
    
    **Pattern:** Task Runner with lazy initialization
    """
    
    def __init__(self, orchestrator: Optional[ExtractionOrchestrator] = None):
        self._orchestrator = orchestrator
    
    @property
    def orchestrator(self) -> ExtractionOrchestrator:
        if self._orchestrator is None:
            from workpack.services.extraction_orchestrator import get_extraction_orchestrator
            self._orchestrator = get_extraction_orchestrator()
        return self._orchestrator
    
    def schedule_extraction(self, add_task: Callable, job_id: str, pdf_path: str) -> None:
        """
        Schedule one extraction run.
        
        Args:
            add_task: FastAPI BackgroundTasks.add_task
            job_id: Job to extract for
            pdf_path: Saved package on local disk
        """
        add_task(self._run_extraction, job_id, pdf_path)
        logger.info(f"Job {job_id}: extraction scheduled for {pdf_path}")
    
    # =========================================================================
    # PRIVATE TASK IMPLEMENTATIONS
    # =========================================================================
    
    def _run_extraction(self, job_id: str, pdf_path: str) -> None:
        """Run the orchestrator; nothing propagates to the request."""
        try:
            report = self.orchestrator.run(job_id, pdf_path)
            logger.info(f"Job {job_id}: background extraction finished ({report.status.value})")
        except Exception as e:
            logger.error(f"Background extraction for job {job_id} failed: {e}")


# Singleton instance
_task_runner: Optional[ExtractionTaskRunner] = None


def get_extraction_task_runner() -> ExtractionTaskRunner:
    """Get or create singleton ExtractionTaskRunner instance"""
    global _task_runner
    if _task_runner is None:
        _task_runner = ExtractionTaskRunner()
    return _task_runner
