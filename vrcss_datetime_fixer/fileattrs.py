import logging
import os
import stat
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, Tuple, Type, TypeVar
from zoneinfo import ZoneInfo

from tzlocal import get_localzone_name

from .config import RETRY_ATTEMPTS, RETRY_DELAY, READABLE_TIMEOUT, READABLE_INTERVAL

log = logging.getLogger(__name__)

T = TypeVar('T')

_EPOCH = datetime(1970, 1, 1, tzinfo = timezone.utc)
_NS = 10 ** 9


#Local time zone of the machine (file name timestamps are local wall clock)
def local_zone():
    return ZoneInfo(get_localzone_name())

#Attach local zone to a naive wall-clock datetime
def to_local_aware(value: datetime) -> datetime:
    if value.tzinfo is not None: return value
    return value.replace(tzinfo = local_zone())

#Format UTC offset as '±hh:mm'
def utc_offset_str(value: datetime) -> str:
    offset = to_local_aware(value).strftime("%z")
    return offset[:3] + ":" + offset[3:]

#Local wall-clock datetime -> nanoseconds since epoch (exact, no float rounding)
def to_epoch_ns(value: datetime) -> int:
    delta = to_local_aware(value) - _EPOCH
    return (delta.days * 86400 + delta.seconds) * _NS + delta.microseconds * 1000

#Nanoseconds since epoch -> naive local wall-clock datetime (microsecond precision)
def from_epoch_ns(value_ns: int) -> datetime:
    seconds, remainder = divmod(value_ns, _NS)
    local = datetime.fromtimestamp(seconds, local_zone())
    return local.replace(microsecond = remainder // 1000, tzinfo = None)


#Call operation, retrying on listed exceptions with a fixed (or growing) delay
def retry_call(operation: Callable[[], T],
               attempts: int = RETRY_ATTEMPTS,
               delay: float = RETRY_DELAY,
               backoff: float = 1.0,
               retry_on: Tuple[Type[BaseException], ...] = (OSError,)) -> T:
    if attempts < 1: raise ValueError("Error! Number of attempts must be at least 1.")
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except retry_on as e:
            if attempt >= attempts: raise
            log.debug("Attempt %d/%d failed (%s), retrying in %.2fs", attempt, attempts, e, delay)
            time.sleep(delay)
            delay *= backoff

#Same as retry_call but reports the outcome as a bool instead of raising
def try_with_retry(operation: Callable[[], object], what: str,
                   attempts: int = RETRY_ATTEMPTS,
                   delay: float = RETRY_DELAY,
                   retry_on: Tuple[Type[BaseException], ...] = (OSError,)) -> bool:
    try:
        retry_call(operation, attempts = attempts, delay = delay, retry_on = retry_on)
        return True
    except retry_on as e:
        log.warning("Warning! Can't update %s: %s", what, e)
        return False


def _restore_mode(path: Path, mode: int):
    try:
        os.chmod(path, mode)
    except OSError as e:
        log.error("Error! Can't restore permissions %o of '%s': %s", mode, path, e)

#Make file writable for the duration of the block, always restoring the original read-only flag
@contextmanager
def writable(path):
    mode = stat.S_IMODE(os.stat(path).st_mode)
    read_only = not mode & stat.S_IWRITE
    if read_only:
        os.chmod(path, mode | stat.S_IWRITE)
        log.debug("Cleared read-only flag of '%s'", path)
    try:
        yield read_only
    finally:
        if read_only: _restore_mode(path, mode)


#Poll until the file can be opened for reading (bounded total wait)
def wait_until_readable(path, timeout: float = READABLE_TIMEOUT, interval: float = READABLE_INTERVAL) -> bool:
    deadline = time.monotonic() + timeout
    while True:
        try:
            with open(path, 'rb'):
                return True
        except OSError:
            if time.monotonic() >= deadline: return False
            time.sleep(interval)


#Snapshot of filesystem timestamps and permissions taken before a destructive rewrite
@dataclass(frozen = True)
class FileTimestampState:
    accessed_ns: int
    modified_ns: int
    created_ns: Optional[int]       #None where the platform doesn't expose creation time
    mode: int

    @property
    def read_only(self):
        return not self.mode & stat.S_IWRITE


def _creation_ns(st: os.stat_result) -> Optional[int]:
    if hasattr(st, 'st_birthtime_ns'): return st.st_birthtime_ns
    if hasattr(st, 'st_birthtime'): return int(st.st_birthtime * _NS)
    if sys.platform.startswith("win"): return st.st_ctime_ns
    return None

#Capture current state of a file
def capture_state(path) -> FileTimestampState:
    st = os.stat(path)
    return FileTimestampState(
        accessed_ns = st.st_atime_ns,
        modified_ns = st.st_mtime_ns,
        created_ns = _creation_ns(st),
        mode = stat.S_IMODE(st.st_mode),
    )
