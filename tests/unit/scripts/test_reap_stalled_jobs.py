from datetime import datetime, timedelta
import importlib.util
import sys
from pathlib import Path

import pytest

from src.videoanalysis.config import AnalysisSettings, load_config
from src.videoanalysis.jobs.jobs_models import JobStatus, JobUpdate
from src.videoanalysis.jobs.jobs_repository import AnalysisJobRepository
from src.videoanalysis.presentations.presentations_repository import PresentationRepository

PROJECT_ROOT = Path(__file__).resolve().parents[3]
MODULE_PATH = PROJECT_ROOT / "scripts" / "reap_stalled_jobs.py"
SPEC = importlib.util.spec_from_file_location("reap_stalled_jobs_module", MODULE_PATH)
reap_stalled_jobs = importlib.util.module_from_spec(SPEC)
assert SPEC and SPEC.loader
sys.modules["reap_stalled_jobs_module"] = reap_stalled_jobs
SPEC.loader.exec_module(reap_stalled_jobs)

STALLED_AT = datetime(2024, 5, 1, 9, 0)


@pytest.fixture
def settings(tmp_path, monkeypatch) -> AnalysisSettings:
    monkeypatch.setenv("VIDEOANALYSIS_DATABASE_URL", f"sqlite:///{tmp_path / 'analysis.db'}")
    monkeypatch.setenv("VIDEOANALYSIS_TEMP_ROOT", str(tmp_path / "work"))
    return AnalysisSettings()


@pytest.fixture
def stalled_job_id(settings) -> str:
    config = load_config(settings)
    PresentationRepository(config.session_factory).create("pres-1")
    jobs = AnalysisJobRepository(config.session_factory, clock=lambda: STALLED_AT)
    job = jobs.create(presentation_id="pres-1", original_filename="a.mp4", file_size=1)
    jobs.apply_update(job.job_id, JobUpdate.upload_interrupted())
    return job.job_id


def job_status(settings, job_id: str) -> JobStatus:
    config = load_config(settings)
    return AnalysisJobRepository(config.session_factory).get(job_id).status


def test_perform_reap_dry_run_leaves_jobs(settings, stalled_job_id) -> None:
    summary = reap_stalled_jobs.perform_reap(
        dry_run=True,
        settings=settings,
        reference_time=STALLED_AT + timedelta(hours=1),
    )

    assert summary.dry_run is True
    assert summary.stalled == 1
    assert summary.failed == 0
    assert job_status(settings, stalled_job_id) is JobStatus.PROCESSING


def test_perform_reap_fails_stalled_jobs(settings, stalled_job_id) -> None:
    summary = reap_stalled_jobs.perform_reap(
        dry_run=False,
        settings=settings,
        reference_time=STALLED_AT + timedelta(hours=1),
    )

    assert summary.failed == 1
    assert job_status(settings, stalled_job_id) is JobStatus.FAILED


def test_perform_reap_honours_grace(settings, stalled_job_id) -> None:
    summary = reap_stalled_jobs.perform_reap(
        dry_run=False,
        grace_seconds=7200,
        settings=settings,
        reference_time=STALLED_AT + timedelta(hours=1),
    )

    assert summary.failed == 0
    assert job_status(settings, stalled_job_id) is JobStatus.PROCESSING


def test_main_dry_run_prints_summary(settings, stalled_job_id, capsys) -> None:
    exit_code = reap_stalled_jobs.main(["--dry-run", "--grace-seconds", "0"])

    captured = capsys.readouterr()
    assert exit_code == 0
    assert captured.out.strip() == "reap dry-run, stalled=1"


def test_main_reports_failure(monkeypatch, capsys) -> None:
    def broken(**kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(reap_stalled_jobs, "perform_reap", broken)

    exit_code = reap_stalled_jobs.main([])

    assert exit_code == 2
    assert "db down" in capsys.readouterr().err
