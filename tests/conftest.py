"""Shared fixtures: small PNG/JPEG screenshots created with Pillow."""

from __future__ import annotations

import os
import shutil
import stat
import struct
import zlib
from datetime import datetime
from pathlib import Path
from typing import Optional

import piexif
import pytest
from PIL import Image

from vrcss_datetime_fixer.config import Settings

LAYOUT_A_PNG = "VRChat_1920x1080_2022-08-31_21-54-39.227.png"
LAYOUT_B_JPG = "VRChat_2022-08-31_21-54-39.227_1920x1080.jpg"
EXPECTED = datetime(2022, 8, 31, 21, 54, 39, 227000)
EXPECTED_TAG = "2022:08:31 21:54:39"

HAS_EXIFTOOL = shutil.which("exiftool") is not None


def make_image(directory: Path, name: str, exif: Optional[dict] = None, size=(32, 24)) -> Path:
    path = directory / name
    img = Image.new("RGB", size, color=(20, 120, 200))
    img.putpixel((3, 4), (255, 0, 0))
    fmt = "JPEG" if path.suffix.lower() in (".jpg", ".jpeg") else "PNG"
    params = {}
    if exif is not None:
        params["exif"] = piexif.dump(exif)
    img.save(path, format=fmt, **params)
    return path


def read_date_original(path: Path) -> Optional[str]:
    with Image.open(path) as img:
        raw = img.info.get("exif")
    if not raw:
        return None
    value = piexif.load(raw)["Exif"].get(piexif.ExifIFD.DateTimeOriginal)
    return value.decode("ascii") if value else None


def set_times(path: Path, value: datetime) -> None:
    ts = value.timestamp()
    os.utime(path, (ts, ts))


def mtime_of(path: Path) -> datetime:
    st = os.stat(path)
    seconds, remainder = divmod(st.st_mtime_ns, 10**9)
    return datetime.fromtimestamp(seconds).replace(microsecond=remainder // 1000)


def mode_of(path: Path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


@pytest.fixture
def settings() -> Settings:
    # No waiting between retries in tests.
    return Settings(retry_delay=0.0, readable_timeout=0.2, readable_interval=0.01, backend="pillow")


@pytest.fixture
def png_a(tmp_path: Path) -> Path:
    return make_image(tmp_path, LAYOUT_A_PNG)


@pytest.fixture
def jpg_b(tmp_path: Path) -> Path:
    return make_image(tmp_path, LAYOUT_B_JPG)


@pytest.fixture
def no_exiftool(monkeypatch):
    """Hide exiftool from the code under test."""
    from vrcss_datetime_fixer import metadata, timestamps

    monkeypatch.setattr(metadata, "exiftool_lookup", lambda search_list=None: None)
    monkeypatch.setattr(timestamps, "exiftool_lookup", lambda search_list=None: None)


def png_chunks(data: bytes) -> list:
    """Raw PNG chunks as (type, bytes) pairs."""
    assert data[:8] == b"\x89PNG\r\n\x1a\n"
    chunks, pos = [], 8
    while pos < len(data):
        length = struct.unpack(">I", data[pos:pos + 4])[0]
        chunks.append((data[pos + 4:pos + 8], data[pos:pos + 12 + length]))
        pos += 12 + length
    return chunks


def make_png_16bit(directory: Path, name: str, size=(3, 2)) -> Path:
    """16 bits per channel RGB PNG with a gAMA chunk, written by hand."""

    def chunk(kind, payload):
        return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF)

    width, height = size
    rows = b"".join(
        b"\x00" + b"".join(struct.pack(">HHH", 1000 * x + 7, 65535 - y, 257 * x + 1) for x in range(width))
        for y in range(height)
    )
    path = directory / name
    path.write_bytes(
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", struct.pack(">IIBBBBB", width, height, 16, 2, 0, 0, 0))
        + chunk(b"gAMA", struct.pack(">I", 45455))
        + chunk(b"IDAT", zlib.compress(rows))
        + chunk(b"IEND", b"")
    )
    return path
