from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path

import pytest

from vrcss_datetime_fixer import rewriter, timestamps
from vrcss_datetime_fixer.errors import Failure, MetadataError
from vrcss_datetime_fixer.metadata import PillowBackend
from vrcss_datetime_fixer.rewriter import rewrite, temp_path_for

from conftest import (
    EXPECTED_TAG,
    LAYOUT_A_PNG,
    LAYOUT_B_JPG,
    make_image,
    make_png_16bit,
    mode_of,
    png_chunks,
    read_date_original,
)


def _pin_times(path):
    os.utime(path, ns=(1_577_934_000_123_000_000, 1_577_934_000_456_000_000))


def _listing(directory):
    return sorted(p.name for p in directory.iterdir())


@pytest.mark.parametrize("name", [LAYOUT_A_PNG, LAYOUT_B_JPG])
def test_rewrite_sets_date_and_keeps_timestamps(tmp_path, settings, no_exiftool, name):
    path = make_image(tmp_path, name)
    _pin_times(path)

    result = rewrite(path, settings)

    assert result
    assert result.failure is None
    st = os.stat(path)
    assert st.st_mtime_ns == 1_577_934_000_456_000_000
    assert st.st_atime_ns == 1_577_934_000_123_000_000
    assert read_date_original(path) == EXPECTED_TAG
    assert _listing(tmp_path) == [name]


def test_rewrite_invalid_name_leaves_file_alone(tmp_path, settings):
    path = make_image(tmp_path, "not_vrchat_format.jpg")
    original = path.read_bytes()
    _pin_times(path)

    result = rewrite(path, settings)

    assert not result
    assert result.failure is Failure.INVALID_FILENAME
    assert path.read_bytes() == original
    assert os.stat(path).st_mtime_ns == 1_577_934_000_456_000_000


def test_rewrite_missing_file(tmp_path, settings):
    result = rewrite(tmp_path / LAYOUT_A_PNG, settings)
    assert not result
    assert result.failure is Failure.NOT_FOUND


def test_rewrite_corrupt_image(tmp_path, settings):
    path = tmp_path / LAYOUT_A_PNG
    path.write_bytes(b"garbage, definitely not a PNG")

    result = rewrite(path, settings, PillowBackend())

    assert result.failure is Failure.UNSUPPORTED_OR_CORRUPT_IMAGE
    assert path.read_bytes() == b"garbage, definitely not a PNG"
    assert _listing(tmp_path) == [LAYOUT_A_PNG]


def test_rewrite_lock_conflict_on_replace(tmp_path, settings, monkeypatch):
    path = make_image(tmp_path, LAYOUT_A_PNG)
    original = path.read_bytes()
    calls = []

    def locked(src, dst):
        calls.append(dst)
        raise PermissionError(32, "The process cannot access the file because it is being used by another process")

    monkeypatch.setattr(rewriter.os, "replace", locked)

    result = rewrite(path, settings, PillowBackend())

    assert result.failure is Failure.EXCLUSIVE_LOCK_CONFLICT
    assert len(calls) == settings.retry_attempts
    assert path.read_bytes() == original
    assert _listing(tmp_path) == [LAYOUT_A_PNG]


def test_rewrite_removes_partial_temp_file(tmp_path, settings):
    path = make_image(tmp_path, LAYOUT_B_JPG)
    original = path.read_bytes()
    targets = []

    class HalfWritingBackend:
        def write_date_original(self, source, target, value):
            targets.append(target)
            target.write_bytes(b"\xff\xd8partial")
            raise MetadataError(Failure.EXCLUSIVE_LOCK_CONFLICT, "lost the file halfway")

    result = rewrite(path, settings, HalfWritingBackend())

    assert result.failure is Failure.EXCLUSIVE_LOCK_CONFLICT
    assert result.detail == "lost the file halfway"
    assert not targets[0].exists()
    assert targets[0].parent == tmp_path
    assert path.read_bytes() == original


def test_rewrite_read_only_file(tmp_path, settings, no_exiftool):
    path = make_image(tmp_path, LAYOUT_A_PNG)
    os.chmod(path, 0o444)

    result = rewrite(path, settings)

    assert result
    assert read_date_original(path) == EXPECTED_TAG
    assert mode_of(path) == 0o444


def test_rewrite_read_only_blocked(tmp_path, settings, monkeypatch):
    path = make_image(tmp_path, LAYOUT_A_PNG)
    original = path.read_bytes()

    @contextmanager
    def refuse(p):
        raise PermissionError(13, "Access is denied")
        yield

    monkeypatch.setattr(rewriter, "writable", refuse)

    result = rewrite(path, settings, PillowBackend())

    assert result.failure is Failure.READ_ONLY_BLOCKED
    assert path.read_bytes() == original


def test_temp_path_is_hidden_sibling_with_same_suffix(tmp_path):
    path = tmp_path / LAYOUT_B_JPG
    temp = temp_path_for(path)

    assert temp.parent == tmp_path
    assert temp.name.startswith(".")
    assert temp.suffix == ".jpg"
    assert temp != temp_path_for(path)


def test_rewrite_keeps_16bit_png_intact(tmp_path, settings):
    path = make_png_16bit(tmp_path, LAYOUT_A_PNG)
    before = png_chunks(path.read_bytes())

    result = rewrite(path, settings, PillowBackend())

    assert result
    after = png_chunks(path.read_bytes())
    assert [c for c in after if c[0] != b"eXIf"] == before
    assert after[0][1][16] == 16
    assert read_date_original(path) == EXPECTED_TAG


def test_rewrite_reports_unrestored_modification_time(tmp_path, settings, monkeypatch):
    path = make_image(tmp_path, LAYOUT_A_PNG)
    os.utime(path, ns=(10**18, 10**18))

    def locked(path, value_ns, accessed_ns=None):
        raise PermissionError(13, "Access is denied")

    monkeypatch.setattr(timestamps, "set_modification_time", locked)

    result = rewrite(path, settings, PillowBackend())

    assert result.updated
    assert result.timestamps_restored is False
    assert result.detail
    assert read_date_original(path) == EXPECTED_TAG


def test_rewrite_lock_conflict_on_load(tmp_path, settings, monkeypatch):
    path = make_image(tmp_path, LAYOUT_B_JPG)
    with open(path, "rb") as f:
        original = f.read()
    real_read_bytes = Path.read_bytes

    def locked(self):
        if self == path:
            raise PermissionError(32, "The process cannot access the file because it is being used by another process")
        return real_read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", locked)

    result = rewrite(path, settings, PillowBackend())

    assert result.failure is Failure.EXCLUSIVE_LOCK_CONFLICT
    assert _listing(tmp_path) == [LAYOUT_B_JPG]
    with open(path, "rb") as f:
        assert f.read() == original
