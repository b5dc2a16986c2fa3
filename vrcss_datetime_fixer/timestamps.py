import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import NamedTuple, Optional

from exiftool.exceptions import ExifToolExecuteError

from .config import DEFAULT_SETTINGS, Settings
from .fileattrs import (FileTimestampState, from_epoch_ns, to_epoch_ns, to_local_aware, try_with_retry,
                        utc_offset_str, writable)
from .filename import ExtractedTimestamp
from .metadata import exiftool_lookup, exiftool_set_file_create_date

log = logging.getLogger(__name__)


class SyncResult(NamedTuple):
    creation_updated: bool
    modification_updated: bool


#Creation (birth) time can only be changed where the filesystem API exposes it
def creation_time_settable() -> bool:
    return sys.platform.startswith("win") or sys.platform == "darwin"

#Format local wall-clock value for exiftool File:FileCreateDate (millisecond precision + UTC offset)
def file_create_date_str(value: datetime) -> str:
    local = to_local_aware(value)
    return f"{local:%Y:%m:%d %H:%M:%S}.{local.microsecond // 1000:03d}{utc_offset_str(local)}"

#Set modification time, keeping access time as is
def set_modification_time(path: Path, value_ns: int, accessed_ns: Optional[int] = None):
    if accessed_ns is None: accessed_ns = os.stat(path).st_atime_ns
    os.utime(path, ns = (accessed_ns, value_ns))

#Set creation time (raises OSError if it isn't possible on this system)
def set_creation_time(path: Path, value: datetime, exiftool_exe: Optional[str]):
    if not creation_time_settable():
        raise OSError(f"creation time can't be changed on {sys.platform}")
    if exiftool_exe is None:
        raise OSError("creation time can be changed only through exiftool, which wasn't found")
    try:
        exiftool_set_file_create_date(exiftool_exe, path, file_create_date_str(value))
    except ExifToolExecuteError as e:
        raise OSError(f"exiftool failed to set FileCreateDate: {getattr(e, 'stderr', e)}") from e


def _update_creation(path: Path, value: datetime, settings: Settings, exiftool_exe: Optional[str]) -> bool:
    if not creation_time_settable():
        log.debug("Creation time of '%s' left as is, not settable on %s", path, sys.platform)
        return False
    if exiftool_exe is None:
        log.debug("Creation time of '%s' left as is, exiftool not found", path)
        return False
    return try_with_retry(lambda: set_creation_time(path, value, exiftool_exe),
                          f"creation time of '{path}'",
                          attempts = settings.retry_attempts, delay = settings.retry_delay)

def _update_modification(path: Path, value_ns: int, settings: Settings, accessed_ns: Optional[int] = None) -> bool:
    return try_with_retry(lambda: set_modification_time(path, value_ns, accessed_ns),
                          f"modification time of '{path}'",
                          attempts = settings.retry_attempts, delay = settings.retry_delay)


def sync(path, timestamp: ExtractedTimestamp, settings: Optional[Settings] = None) -> SyncResult:
    """Set creation and modification time of a file to the file name timestamp.

    Each attribute is attempted independently (with one retry) and reported
    on its own. Read-only files are made writable for the duration and put
    back afterwards. Never raises for missing files or permission problems.
    """
    settings = settings or DEFAULT_SETTINGS
    path = Path(path)
    if not path.is_file(): return SyncResult(False, False)

    value_ns = to_epoch_ns(timestamp.value)
    exiftool_exe = exiftool_lookup(settings.exiftool) if creation_time_settable() else None
    try:
        with writable(path):
            creation = _update_creation(path, timestamp.value, settings, exiftool_exe)
            modification = _update_modification(path, value_ns, settings)
    except OSError as e:
        log.warning("Warning! Can't make '%s' writable: %s", path, e)
        return SyncResult(False, False)
    return SyncResult(creation, modification)


#Put captured timestamps and permissions back onto a file (after it was replaced)
def restore_state(path, state: FileTimestampState, settings: Optional[Settings] = None) -> SyncResult:
    settings = settings or DEFAULT_SETTINGS
    path = Path(path)
    creation = False
    if state.created_ns is not None and creation_time_settable():
        creation = _update_creation(path, from_epoch_ns(state.created_ns), settings, exiftool_lookup(settings.exiftool))
    modification = _update_modification(path, state.modified_ns, settings, state.accessed_ns)
    try:
        os.chmod(path, state.mode)
    except OSError as e:
        log.error("Error! Can't restore permissions %o of '%s': %s", state.mode, path, e)
    return SyncResult(creation, modification)
