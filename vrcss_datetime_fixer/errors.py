from enum import Enum


#Per-file failure classes (values are human readable messages)
class Failure(Enum):
    INVALID_FILENAME             = "file name doesn't match VRChat screenshot format, skipped"
    NOT_FOUND                    = "file not found"
    READ_ONLY_BLOCKED            = "file is read-only and can't be made writable"
    UNSUPPORTED_OR_CORRUPT_IMAGE = "image can't be loaded (unsupported format or corrupt data)"
    EXCLUSIVE_LOCK_CONFLICT      = "file is locked by another process"
    UNEXPECTED                   = "unexpected error"

    @property
    def is_skip(self):
        return self is Failure.INVALID_FILENAME


#Metadata backend error (load/encode failures are reported through this)
class MetadataError(Exception):
    def __init__(self, failure: Failure, detail: str = ""):
        super().__init__(f"{failure.value}: {detail}" if detail else failure.value)
        self.failure = failure
        self.detail = detail
