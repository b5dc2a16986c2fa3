import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .config import DEFAULT_SETTINGS, Settings
from .errors import Failure
from .filename import ExtractedTimestamp, Rejected, parse
from .metadata import get_backend, resolve_exiftool
from .rewriter import rewrite
from .timestamps import sync

log = logging.getLogger(__name__)


#Result of processing one file
@dataclass(frozen = True)
class ProcessOutcome:
    path: Path
    parsed: bool
    timestamp: Optional[ExtractedTimestamp] = None
    creation_updated: bool = False
    modification_updated: bool = False
    embedded_date_updated: bool = False
    failure: Optional[Failure] = None
    message: Optional[str] = None

    #file name didn't match, file left untouched (not an error)
    @property
    def skipped(self):
        return self.failure is Failure.INVALID_FILENAME

    @property
    def success(self):
        return self.parsed and self.failure is None


def process_file(path, settings: Optional[Settings] = None, backend = None) -> ProcessOutcome:
    #parse -> filesystem timestamps -> embedded date; the rewrite restores what it found, i.e. the synced timestamps
    settings = settings or DEFAULT_SETTINGS
    path = Path(path)
    parsed = parse(path.name)
    if isinstance(parsed, Rejected):
        return ProcessOutcome(path, False, failure = Failure.INVALID_FILENAME, message = parsed.reason.value)
    if not path.is_file():
        return ProcessOutcome(path, True, parsed, failure = Failure.NOT_FOUND, message = f"{Failure.NOT_FOUND.value}: {path}")

    synced = sync(path, parsed, settings)
    rewritten = rewrite(path, settings, backend)
    return ProcessOutcome(
        path = path,
        parsed = True,
        timestamp = parsed,
        creation_updated = synced.creation_updated,
        modification_updated = synced.modification_updated and rewritten.timestamps_restored,
        embedded_date_updated = rewritten.updated,
        failure = rewritten.failure,
        message = rewritten.detail or None,
    )


#Process files one after another; an unexpected error fails that file only
def process_files(paths: Iterable, settings: Optional[Settings] = None, backend = None) -> Iterator[ProcessOutcome]:
    settings = resolve_exiftool(settings or DEFAULT_SETTINGS)
    if backend is None: backend = get_backend(settings)
    for path in paths:
        try:
            outcome = process_file(path, settings, backend)
        except Exception as e:
            log.exception("Error! Unexpected failure while processing '%s'", path)
            outcome = ProcessOutcome(Path(path), isinstance(parse(Path(path).name), ExtractedTimestamp),
                                     failure = Failure.UNEXPECTED, message = str(e))
        yield outcome
