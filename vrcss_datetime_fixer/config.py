from dataclasses import dataclass
from pathlib import Path
from typing import Optional

#Supported image file extensions (lower case, with dot)
SUPPORTED_EXTENSIONS = ('.png', '.jpg', '.jpeg')

#Default wildcards for directory processing
DEFAULT_WILDCARDS = ",".join("*" + ext for ext in SUPPORTED_EXTENSIONS)

#Resolution bounds encoded in file names
RESOLUTION_MIN = 1
RESOLUTION_MAX = 99999

#Retry of filesystem attribute writes: first attempt + one retry after a fixed delay
RETRY_ATTEMPTS = 2
RETRY_DELAY    = 0.1            #seconds

#Polling for the replaced file to become readable
READABLE_TIMEOUT  = 2.0         #seconds (total)
READABLE_INTERVAL = 0.05        #seconds (between attempts)

#Metadata backends
BACKEND_AUTO     = 'auto'
BACKEND_EXIFTOOL = 'exiftool'
BACKEND_PILLOW   = 'pillow'
BACKENDS = (BACKEND_AUTO, BACKEND_EXIFTOOL, BACKEND_PILLOW)


@dataclass(frozen = True)
class Settings:
    retry_attempts: int = RETRY_ATTEMPTS
    retry_delay: float = RETRY_DELAY
    readable_timeout: float = READABLE_TIMEOUT
    readable_interval: float = READABLE_INTERVAL
    backend: str = BACKEND_AUTO
    exiftool: Optional[Path] = None

    def __post_init__(self):
        if self.retry_attempts < 1: raise ValueError("Error! Retry attempts must be at least 1.")
        if self.retry_delay < 0: raise ValueError("Error! Retry delay can't be negative.")
        if self.readable_timeout < 0: raise ValueError("Error! Readable timeout can't be negative.")
        if self.backend not in BACKENDS:
            raise ValueError(f"Error! Unknown metadata backend '{self.backend}'.")

    #Build settings from parsed call arguments
    @classmethod
    def from_args(cls, args):
        return cls(
            retry_attempts = args.retries + 1,
            backend = args.backend,
            exiftool = args.exiftool,
        )


DEFAULT_SETTINGS = Settings()
