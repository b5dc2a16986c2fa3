"""VRChat screenshot file name grammar.

Two layouts are accepted (case-insensitive, ASCII digits only):

    A: VRChat_<W>x<H>_<YYYY>-<MM>-<DD>_<hh>-<mm>-<ss>.<fff>.<ext>
    B: VRChat_<YYYY>-<MM>-<DD>_<hh>-<mm>-<ss>.<fff>_<W>x<H>.<ext>

where <W>/<H> are 1-5 digits in [1, 99999] and <ext> is png, jpg or jpeg.
The encoded instant is a local wall-clock value with millisecond precision.
"""
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import PurePath
from typing import Optional, Union

from .config import RESOLUTION_MIN, RESOLUTION_MAX

_PREFIX     = r'VRChat_'
_RESOLUTION = r'(?P<width>[0-9]{1,5})x(?P<height>[0-9]{1,5})'
_DATETIME   = (r'(?P<year>[0-9]{4})-(?P<month>[0-9]{2})-(?P<day>[0-9]{2})'
               r'_(?P<hour>[0-9]{2})-(?P<minute>[0-9]{2})-(?P<second>[0-9]{2})'
               r'\.(?P<millisecond>[0-9]{3})')
_EXTENSION  = r'\.(?P<ext>png|jpe?g)'


class FilenameLayout(Enum):
    RESOLUTION_FIRST = 'A'
    TIMESTAMP_FIRST  = 'B'


#Layouts in precedence order (A wins a tie)
_LAYOUTS = (
    (FilenameLayout.RESOLUTION_FIRST, re.compile(_PREFIX + _RESOLUTION + '_' + _DATETIME + _EXTENSION, re.IGNORECASE | re.ASCII)),
    (FilenameLayout.TIMESTAMP_FIRST,  re.compile(_PREFIX + _DATETIME + '_' + _RESOLUTION + _EXTENSION, re.IGNORECASE | re.ASCII)),
)


class RejectReason(Enum):
    EMPTY_OR_NULL           = "file name is empty"
    NO_LAYOUT_MATCH         = "file name doesn't match any VRChat screenshot layout"
    RESOLUTION_OUT_OF_RANGE = f"resolution must be between {RESOLUTION_MIN} and {RESOLUTION_MAX}"
    INVALID_CALENDAR_DATE   = "date/time encoded in file name doesn't exist"


@dataclass(frozen = True)
class ExtractedTimestamp:
    value: datetime                 #naive, local wall clock
    layout: FilenameLayout
    width: int
    height: int

    @property
    def millisecond(self):
        return self.value.microsecond // 1000

    #Value for the embedded date tag (no sub-second part)
    @property
    def exif_value(self):
        v = self.value
        return f"{v.year:04d}:{v.month:02d}:{v.day:02d} {v.hour:02d}:{v.minute:02d}:{v.second:02d}"


@dataclass(frozen = True)
class Rejected:
    reason: RejectReason
    filename: Optional[str] = None

    def __str__(self):
        return f"{self.filename!r}: {self.reason.value}"


ParseResult = Union[ExtractedTimestamp, Rejected]


def _in_resolution_range(value: int) -> bool:
    return RESOLUTION_MIN <= value <= RESOLUTION_MAX


def _from_match(layout: FilenameLayout, match, name: str) -> ParseResult:
    width, height = int(match['width']), int(match['height'])
    if not (_in_resolution_range(width) and _in_resolution_range(height)):
        return Rejected(RejectReason.RESOLUTION_OUT_OF_RANGE, name)

    try:
        value = datetime(
            int(match['year']), int(match['month']), int(match['day']),
            int(match['hour']), int(match['minute']), int(match['second']),
            int(match['millisecond']) * 1000,
        )
    except ValueError:
        return Rejected(RejectReason.INVALID_CALENDAR_DATE, name)
    return ExtractedTimestamp(value, layout, width, height)


def parse(filename) -> ParseResult:
    """Extract the screenshot timestamp from a file name or path.

    Never raises for malformed input: anything that is not a valid VRChat
    screenshot name comes back as :class:`Rejected` with the reason.
    """
    if filename is None: return Rejected(RejectReason.EMPTY_OR_NULL)
    name = str(filename)
    if not name.strip(): return Rejected(RejectReason.EMPTY_OR_NULL, name)
    name = PurePath(name).name

    for layout, pattern in _LAYOUTS:
        match = pattern.fullmatch(name)
        if match: return _from_match(layout, match, name)
    return Rejected(RejectReason.NO_LAYOUT_MATCH, name)


def is_valid(filename) -> bool:
    return isinstance(parse(filename), ExtractedTimestamp)
