from pathlib import Path

import pytest

from src.videoanalysis.exceptions import ChunkSplitError
from src.videoanalysis.upload.chunk_splitter import (
    chunk_count,
    remove_chunks,
    split_filename,
    split_into_chunks,
)


def write_source(tmp_path: Path, size: int, name: str = "talk.MP4") -> Path:
    source = tmp_path / name
    source.write_bytes(bytes(index % 251 for index in range(size)))
    return source


def test_split_produces_bounded_chunks_in_order(tmp_path: Path) -> None:
    source = write_source(tmp_path, 120)

    chunks = split_into_chunks(source, chunk_size=50, target_dir=tmp_path / "chunks")

    assert [chunk.size for chunk in chunks] == [50, 50, 20]
    assert [chunk.index for chunk in chunks] == [0, 1, 2]
    assert all(chunk.total == 3 for chunk in chunks)
    assert [chunk.path.name for chunk in chunks] == [
        "talk_chunk_0.mp4",
        "talk_chunk_1.mp4",
        "talk_chunk_2.mp4",
    ]
    assert b"".join(chunk.path.read_bytes() for chunk in chunks) == source.read_bytes()


def test_split_exact_multiple_has_no_empty_tail(tmp_path: Path) -> None:
    source = write_source(tmp_path, 100)

    chunks = split_into_chunks(source, chunk_size=50, target_dir=tmp_path / "chunks")

    assert [chunk.size for chunk in chunks] == [50, 50]
    assert chunks[-1].is_last


def test_split_reads_in_blocks_smaller_than_chunk(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr("src.videoanalysis.upload.chunk_splitter.READ_BLOCK_SIZE", 7)
    source = write_source(tmp_path, 64)

    chunks = split_into_chunks(source, chunk_size=30, target_dir=tmp_path / "chunks")

    assert [chunk.size for chunk in chunks] == [30, 30, 4]
    assert b"".join(chunk.path.read_bytes() for chunk in chunks) == source.read_bytes()


def test_split_empty_source_yields_no_chunks(tmp_path: Path) -> None:
    source = write_source(tmp_path, 0)

    assert split_into_chunks(source, chunk_size=50, target_dir=tmp_path / "chunks") == []


def test_split_missing_source_raises(tmp_path: Path) -> None:
    with pytest.raises(ChunkSplitError) as excinfo:
        split_into_chunks(tmp_path / "absent.mp4", chunk_size=50, target_dir=tmp_path / "chunks")

    assert excinfo.value.chunks == []


def test_split_failure_reports_written_chunks(tmp_path: Path) -> None:
    source = write_source(tmp_path, 120)
    target = tmp_path / "chunks"
    # A directory where the second chunk file should go makes the write fail.
    (target / "talk_chunk_1.mp4").mkdir(parents=True)

    with pytest.raises(ChunkSplitError) as excinfo:
        split_into_chunks(source, chunk_size=50, target_dir=target)

    assert [chunk.index for chunk in excinfo.value.chunks] == [0]
    assert excinfo.value.chunks[0].path.exists()


def test_remove_chunks_deletes_files_and_directory(tmp_path: Path) -> None:
    source = write_source(tmp_path, 120)
    target = tmp_path / "chunks"
    chunks = split_into_chunks(source, chunk_size=50, target_dir=target)
    chunks[0].path.unlink()

    removed = remove_chunks(chunks, target)

    assert removed == 2
    assert not target.exists()


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("Talk.MP4", ("Talk", ".mp4")),
        ("my.video.mov", ("my.video", ".mov")),
        ("noext", ("noext", "")),
        (".hidden", (".hidden", "")),
        ("trailing.", ("trailing", "")),
    ],
)
def test_split_filename(filename: str, expected: tuple[str, str]) -> None:
    assert split_filename(filename) == expected


def test_chunk_count_rounds_up() -> None:
    assert chunk_count(120, 50) == 3
    assert chunk_count(100, 50) == 2
    assert chunk_count(0, 50) == 0
