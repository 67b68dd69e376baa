"""
Unit Tests for the startup crash-recovery sweep
"""
from datetime import datetime, timedelta, timezone

from workpack.models.extraction import ExtractionStatus
from workpack.services.crash_recovery import run_crash_recovery_sweep

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class TestCrashRecoverySweep:
    
    def test_resets_45_minute_old_run_keeps_10_minute_old(self, job_repository):
        job_repository.create_job("stuck")
        job_repository.create_job("running")
        job_repository.mark_extraction_started("stuck", started_at=NOW - timedelta(minutes=45))
        job_repository.mark_extraction_started("running", started_at=NOW - timedelta(minutes=10))
        
        reset = run_crash_recovery_sweep(job_repository, stale_after_minutes=30, now=NOW)
        
        assert reset == 1
        stuck = job_repository.get_extraction_state("stuck")
        assert stuck.status == ExtractionStatus.NOT_STARTED
        assert stuck.complete is False
        assert job_repository.get_extraction_state("running").status == ExtractionStatus.STARTED
    
    def test_completed_runs_untouched(self, job_repository):
        job_repository.create_job("failed")
        job_repository.mark_extraction_started("failed", started_at=NOW - timedelta(hours=3))
        job_repository.mark_extraction_failed("failed", "PDF could not be parsed")
        
        assert run_crash_recovery_sweep(job_repository, now=NOW) == 0
        assert job_repository.get_extraction_state("failed").status == ExtractionStatus.FAILED
    
    def test_never_started_untouched(self, job_repository):
        job_repository.create_job("idle")
        assert run_crash_recovery_sweep(job_repository, now=NOW) == 0
        assert job_repository.get_extraction_state("idle").status == ExtractionStatus.NOT_STARTED
    
    def test_window_is_configurable(self, job_repository):
        job_repository.create_job("stuck")
        job_repository.mark_extraction_started("stuck", started_at=NOW - timedelta(minutes=10))
        assert run_crash_recovery_sweep(job_repository, stale_after_minutes=5, now=NOW) == 1
