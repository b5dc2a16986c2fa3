"""Embedded date rewrite.

The image is never modified in place: a copy carrying the new
``DateTimeOriginal`` is written next to it and swapped in with
:func:`os.replace`, after which the filesystem timestamps and permissions
captured beforehand are put back.
"""
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import DEFAULT_SETTINGS, Settings
from .errors import Failure, MetadataError
from .fileattrs import capture_state, retry_call, wait_until_readable, writable
from .filename import Rejected, parse
from .metadata import get_backend
from .timestamps import restore_state

log = logging.getLogger(__name__)


@dataclass(frozen = True)
class RewriteResult:
    updated: bool
    failure: Optional[Failure] = None
    detail: str = ""
    timestamps_restored: bool = True     #False when captured timestamps couldn't be put back after the replace

    def __bool__(self):
        return self.updated


def _failed(failure: Failure, detail: str = "") -> RewriteResult:
    return RewriteResult(False, failure, detail)

#Temporary file next to the target (same directory keeps os.replace atomic), original extension kept for format detection
def temp_path_for(path: Path) -> Path:
    return path.with_name(f".{path.stem}.{uuid.uuid4().hex[:8]}.tmp{path.suffix}")

def _discard(temp_path: Path):
    try:
        temp_path.unlink(missing_ok = True)
    except OSError as e:
        log.error("Error! Can't remove temporary file '%s': %s", temp_path, e)

#Swap temporary file in place of the original
def _replace(path: Path, temp_path: Path, settings: Settings):
    try:
        retry_call(lambda: os.replace(temp_path, path),
                   attempts = settings.retry_attempts, delay = settings.retry_delay, retry_on = (PermissionError,))
    except PermissionError as e:
        raise MetadataError(Failure.EXCLUSIVE_LOCK_CONFLICT, str(e)) from e


def rewrite(path, settings: Optional[Settings] = None, backend = None) -> RewriteResult:
    """Write the file name timestamp into the image's DateTimeOriginal tag.

    Returns a falsy :class:`RewriteResult` carrying the failure class for
    every expected problem (missing file, unparsable name, unreadable image,
    file locked by another process). The temporary file is removed and the
    read-only flag restored on every path out of here.
    """
    settings = settings or DEFAULT_SETTINGS
    path = Path(path)
    if not path.is_file(): return _failed(Failure.NOT_FOUND, str(path))

    parsed = parse(path.name)
    if isinstance(parsed, Rejected): return _failed(Failure.INVALID_FILENAME, parsed.reason.value)

    if backend is None: backend = get_backend(settings)
    state = capture_state(path)
    temp_path = temp_path_for(path)
    try:
        with writable(path):
            try:
                backend.write_date_original(path, temp_path, parsed.exif_value)
                _replace(path, temp_path, settings)
            except MetadataError as e:
                log.debug("Embedded date of '%s' not updated: %s", path, e)
                return _failed(e.failure, e.detail)
            finally:
                _discard(temp_path)

            #replacing resets filesystem timestamps, put captured ones back
            restored = restore_state(path, state, settings)
    except PermissionError as e:
        return _failed(Failure.READ_ONLY_BLOCKED, str(e))

    if not wait_until_readable(path, settings.readable_timeout, settings.readable_interval):
        log.warning("Warning! '%s' is still not readable after %.1fs", path, settings.readable_timeout)
    if not restored.modification_updated:
        log.warning("Warning! Modification time of '%s' was reset by the rewrite and couldn't be restored", path)
        return RewriteResult(True, detail = "modification time not restored", timestamps_restored = False)
    return RewriteResult(True)
