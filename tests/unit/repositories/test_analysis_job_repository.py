from datetime import datetime, timedelta

import pytest
from sqlalchemy import BigInteger

from src.videoanalysis.db.db_models import AnalysisJobModel
from src.videoanalysis.exceptions import (
    ActiveJobExistsError,
    InvalidTransitionError,
    JobNotFoundError,
)
from src.videoanalysis.jobs.jobs_models import JobStatus, JobUpdate
from src.videoanalysis.jobs.jobs_repository import AnalysisJobRepository


class SteppingClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 9, 0)

    def __call__(self) -> datetime:
        current = self.now
        self.now += timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def repo(session_factory, presentation_repo, clock) -> AnalysisJobRepository:
    presentation_repo.create("pres-1", title="Quarterly review")
    presentation_repo.create("pres-2", title="Demo day")
    return AnalysisJobRepository(session_factory, clock=clock)


def create_job(repo: AnalysisJobRepository, presentation_id: str = "pres-1"):
    return repo.create(presentation_id=presentation_id, original_filename="talk.mp4", file_size=2048)


def test_create_inserts_pending_job(repo) -> None:
    job = create_job(repo)

    stored = repo.get(job.job_id)
    assert stored.status is JobStatus.PENDING
    assert stored.presentation_id == "pres-1"
    assert stored.original_filename == "talk.mp4"
    assert stored.file_size == 2048
    assert stored.remote_job_id is None
    assert stored.error_message is None


def test_second_active_job_is_rejected_and_first_untouched(repo) -> None:
    first = create_job(repo)

    with pytest.raises(ActiveJobExistsError) as excinfo:
        create_job(repo)

    assert excinfo.value.existing_job_id == first.job_id
    assert repo.get(first.job_id) == first
    assert len(repo.list_for_presentation("pres-1")) == 1


def test_active_job_is_per_presentation(repo) -> None:
    create_job(repo, "pres-1")

    other = create_job(repo, "pres-2")

    assert other.status is JobStatus.PENDING


def test_new_job_allowed_once_previous_is_terminal(repo) -> None:
    first = create_job(repo)
    repo.apply_update(first.job_id, JobUpdate.failed("Cancelled by user"))

    second = create_job(repo)

    assert second.job_id != first.job_id
    assert repo.find_active("pres-1").job_id == second.job_id


def test_get_unknown_job_raises(repo) -> None:
    with pytest.raises(JobNotFoundError):
        repo.get("missing")


def test_apply_update_walks_the_lifecycle(repo) -> None:
    job = create_job(repo)

    processing = repo.apply_update(job.job_id, JobUpdate.uploaded("remote-1", "stored_videos/1.mp4"))
    assert processing.status is JobStatus.PROCESSING
    assert processing.remote_job_id == "remote-1"
    assert processing.video_path == "stored_videos/1.mp4"
    assert processing.updated_at > job.updated_at

    completed = repo.apply_update(job.job_id, JobUpdate.completed())
    assert completed.status is JobStatus.COMPLETED
    assert completed.remote_job_id == "remote-1"
    assert completed.video_path == "stored_videos/1.mp4"


def test_terminal_status_is_never_left(repo) -> None:
    job = create_job(repo)
    repo.apply_update(job.job_id, JobUpdate.failed("Cancelled by user"))

    for change in (JobUpdate.uploaded("remote-1", None), JobUpdate.completed(), JobUpdate.failed("late")):
        with pytest.raises(InvalidTransitionError) as excinfo:
            repo.apply_update(job.job_id, change)
        assert excinfo.value.current == "failed"

    stored = repo.get(job.job_id)
    assert stored.status is JobStatus.FAILED
    assert stored.error_message == "Cancelled by user"


def test_pending_cannot_jump_to_completed(repo) -> None:
    job = create_job(repo)

    with pytest.raises(InvalidTransitionError):
        repo.apply_update(job.job_id, JobUpdate.completed())

    assert repo.get(job.job_id).status is JobStatus.PENDING


def test_apply_update_unknown_job_raises(repo) -> None:
    with pytest.raises(JobNotFoundError):
        repo.apply_update("missing", JobUpdate.failed("x"))


def test_processing_note_is_cleared_by_later_update(repo) -> None:
    job = create_job(repo)
    noted = repo.apply_update(job.job_id, JobUpdate.upload_interrupted())
    assert noted.status is JobStatus.PROCESSING
    assert noted.error_message

    completed_upload = repo.apply_update(job.job_id, JobUpdate.uploaded("remote-2", None))

    assert completed_upload.error_message is None
    assert completed_upload.remote_job_id == "remote-2"


def test_list_for_presentation_is_newest_first(repo) -> None:
    first = create_job(repo)
    repo.apply_update(first.job_id, JobUpdate.failed("boom"))
    second = create_job(repo)

    jobs = repo.list_for_presentation("pres-1")

    assert [job.job_id for job in jobs] == [second.job_id, first.job_id]
    assert repo.list_for_presentation("pres-2") == []


def test_file_size_holds_sources_over_two_gib(repo) -> None:
    size = 5 * 1024 ** 3

    job = repo.create(presentation_id="pres-1", original_filename="long.mp4", file_size=size)

    assert isinstance(AnalysisJobModel.__table__.c.file_size.type, BigInteger)
    assert repo.get(job.job_id).file_size == size


def test_list_polling_returns_processing_jobs_with_handle(repo) -> None:
    interrupted = create_job(repo, "pres-1")
    repo.apply_update(interrupted.job_id, JobUpdate.upload_interrupted())
    tracked = create_job(repo, "pres-2")
    repo.apply_update(tracked.job_id, JobUpdate.uploaded("remote-7", None))

    assert [job.job_id for job in repo.list_polling()] == [tracked.job_id]

    repo.apply_update(tracked.job_id, JobUpdate.completed())
    assert repo.list_polling() == []


def test_list_stalled_returns_processing_jobs_without_handle(repo, clock) -> None:
    stalled = create_job(repo, "pres-1")
    repo.apply_update(stalled.job_id, JobUpdate.upload_interrupted())
    tracked = create_job(repo, "pres-2")
    repo.apply_update(tracked.job_id, JobUpdate.uploaded("remote-7", None))

    assert repo.list_stalled(clock.now - timedelta(hours=1)) == []

    found = repo.list_stalled(clock.now + timedelta(seconds=1))
    assert [job.job_id for job in found] == [stalled.job_id]
