__version__ = "1.0.0"

from .config import Settings
from .errors import Failure
from .filename import ExtractedTimestamp, FilenameLayout, Rejected, RejectReason, is_valid, parse
from .timestamps import SyncResult, sync
from .rewriter import RewriteResult, rewrite
from .processor import ProcessOutcome, process_file, process_files
