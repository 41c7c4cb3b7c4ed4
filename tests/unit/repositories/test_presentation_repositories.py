import pytest

from src.videoanalysis.exceptions import PresentationNotFoundError


def test_create_and_get_presentation(presentation_repo) -> None:
    presentation_repo.create("pres-1", title="Pitch", owner_user_id="user-9", goal_time_minutes=7)

    record = presentation_repo.get("pres-1")

    assert record.title == "Pitch"
    assert record.owner_user_id == "user-9"
    assert record.goal_time_minutes == 7
    assert record.video_url is None


def test_get_unknown_presentation_raises(presentation_repo) -> None:
    with pytest.raises(PresentationNotFoundError):
        presentation_repo.get("missing")


def test_set_video_url(presentation_repo) -> None:
    presentation_repo.create("pres-1")

    presentation_repo.set_video_url("pres-1", "/api/files/videos/stored_videos/1.mp4")

    assert presentation_repo.get("pres-1").video_url == "/api/files/videos/stored_videos/1.mp4"


def test_set_video_url_unknown_presentation(presentation_repo) -> None:
    with pytest.raises(PresentationNotFoundError):
        presentation_repo.set_video_url("missing", "/x.mp4")


def test_replace_sections_keeps_only_latest(presentation_repo, section_repo) -> None:
    presentation_repo.create("pres-1")
    section_repo.replace_sections(
        "pres-1",
        "job-1",
        {"voice": {"wpm_avg": 100.0}, "transcript": {"transcription": "old"}},
    )

    section_repo.replace_sections("pres-1", "job-2", {"voice": {"wpm_avg": 140.0}})

    sections = section_repo.list_sections("pres-1")
    assert set(sections) == {"voice"}
    assert sections["voice"].job_id == "job-2"
    assert sections["voice"].payload == {"wpm_avg": 140.0}


def test_sections_keep_non_ascii_text(presentation_repo, section_repo) -> None:
    presentation_repo.create("pres-1")
    section_repo.replace_sections("pres-1", "job-1", {"transcript": {"transcription": "Привет"}})

    assert section_repo.list_sections("pres-1")["transcript"].payload["transcription"] == "Привет"


def test_replace_sections_unknown_presentation(section_repo) -> None:
    with pytest.raises(PresentationNotFoundError):
        section_repo.replace_sections("missing", "job-1", {"voice": {}})
