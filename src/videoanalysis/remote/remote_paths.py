"""Helpers for storage paths reported by the analysis service."""

from __future__ import annotations

from collections.abc import Sequence

DEFAULT_STORAGE_MARKERS = ("stored_videos", "videos")
DEFAULT_VIDEO_URL_PREFIX = "/api/files/videos/"


def to_relative_storage_path(
    absolute_path: str,
    markers: Sequence[str] = DEFAULT_STORAGE_MARKERS,
) -> str:
    """Cut an absolute storage path down to the part served by the file server.

    ``"C:\\uploads\\stored_videos\\123.mp4"`` and
    ``"/app/uploads/stored_videos/123.mp4"`` both become
    ``"stored_videos/123.mp4"``. Without a marker the bare filename is used;
    an unusable value is returned unchanged.
    """
    if not absolute_path:
        return absolute_path

    path = absolute_path.replace("\\", "/")
    for marker in markers:
        position = path.find(marker)
        if position >= 0:
            return path[position:]

    filename = path.rsplit("/", 1)[-1]
    if "/" in path and filename:
        return filename
    return absolute_path


def build_video_url(video_path: str | None, prefix: str = DEFAULT_VIDEO_URL_PREFIX) -> str | None:
    """Return the public URL of a stored video, e.g. ``/api/files/videos/stored_videos/1.mp4``."""
    if not video_path:
        return None
    if video_path.startswith(("http://", "https://")) or video_path.startswith(prefix):
        return video_path
    tail = video_path.lstrip("/")
    while "//" in tail:
        tail = tail.replace("//", "/")
    return prefix.rstrip("/") + "/" + tail
