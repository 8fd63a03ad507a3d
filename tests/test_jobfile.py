from __future__ import annotations

from pathlib import Path

import pytest

from jobrunner.core.jobfile import JobFileError, load_jobs, parse_jobs


def test_blank_lines_are_neither_counted_nor_launched(write_jobs) -> None:
    path = write_jobs(["echo a", "", "   ", "echo b", "\t", "echo c"])

    job_set = load_jobs(path)

    assert len(job_set) == 3
    assert job_set.commands == ["echo a", "echo b", "echo c"]
    # Indices are positions among non-empty lines, used for "job: i/n".
    assert [j.index for j in job_set] == [1, 2, 3]


def test_last_line_without_trailing_newline_is_kept(write_jobs) -> None:
    path = write_jobs(["echo a", "echo b"], trailing_newline=False)

    assert load_jobs(path).commands == ["echo a", "echo b"]


def test_shell_syntax_is_kept_verbatim() -> None:
    line = "fslmaths in.nii -bin out.nii && echo ok | tee -a log.txt > /dev/null"

    assert parse_jobs(f"  {line}  \r\n") == [line]


def test_only_newline_separates_jobs(tmp_path: Path) -> None:
    path = tmp_path / "jobs.txt"
    path.write_text("echo a\u2028b\nprintf 'x\x0cy'\r\nprintf 'p\rq'\n", encoding="utf-8", newline="")

    job_set = load_jobs(path)

    assert job_set.commands == ["echo a\u2028b", "printf 'x\x0cy'", "printf 'p\rq'"]
    assert len(job_set) == 3


def test_source_is_resolved_to_absolute_path(tmp_path: Path, write_jobs, monkeypatch) -> None:
    write_jobs(["true"])
    monkeypatch.chdir(tmp_path)

    job_set = load_jobs("jobs.txt")

    assert Path(job_set.source).is_absolute()
    assert job_set.source == str((tmp_path / "jobs.txt").resolve())


def test_empty_file_gives_empty_job_set(write_jobs) -> None:
    assert len(load_jobs(write_jobs([]))) == 0


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(JobFileError, match="does not exist"):
        load_jobs(tmp_path / "nope.txt")


def test_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(JobFileError, match="not a regular file"):
        load_jobs(tmp_path)


def test_binary_file_raises(tmp_path: Path) -> None:
    path = tmp_path / "jobs.bin"
    path.write_bytes(b"\xff\xfe\x00echo")

    with pytest.raises(JobFileError, match="UTF-8"):
        load_jobs(path)
