import sys, argparse
import os, fnmatch
import logging
import time
from pathlib import Path

from . import __version__
from .config import BACKENDS, BACKEND_AUTO, DEFAULT_WILDCARDS, RETRY_ATTEMPTS, Settings
from .errors import Failure
from .metadata import get_backend, resolve_exiftool
from .processor import ProcessOutcome, process_files

#Progress line is printed every N files
PROGRESS_EVERY = 10


#Format duration in seconds as hh:mm:ss
def format_duration(seconds):
    hours, remainder = divmod(int(seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours:02}:{minutes:02}:{seconds:02}"

def _flag(updated):
    return "updated" if updated else "skipped"

#Render outcome of one file as a single line
def format_outcome(outcome: ProcessOutcome) -> str:
    if outcome.skipped:
        return f"skipped ({outcome.message})" if outcome.message else "skipped"
    if not outcome.parsed or outcome.timestamp is None:
        return f"Error! {outcome.message or outcome.failure.value}"
    value = outcome.timestamp.value
    result = (f"{value:%Y-%m-%d %H:%M:%S}.{outcome.timestamp.millisecond:03d}"
              f" | created: {_flag(outcome.creation_updated)}"
              f" | modified: {_flag(outcome.modification_updated)}"
              f" | taken: {_flag(outcome.embedded_date_updated)}")
    if outcome.failure is Failure.NOT_FOUND:
        result += f" | Error! {outcome.failure.value}"
    elif outcome.failure is not None:
        result += f" | Warning! {outcome.failure.value}"
        if outcome.message: result += f" ({outcome.message})"
    return result

#Collect files to process
def collect_files(base_path: Path, wildcards, dir_depth = 0):
    if base_path.is_file(): return [base_path]
    wildcards = [w.lower() for w in wildcards]
    result = []
    for root, dirs, files in os.walk(base_path):
        current_path = Path(root)
        depth = len(current_path.relative_to(base_path).parts)
        if dir_depth >= 0 and depth > dir_depth:
            dirs[:] = []
            continue    #skip if depth is deeper than being set
        dirs.sort()
        for filename in sorted(files):
            if any(fnmatch.fnmatchcase(filename.lower(), pat) for pat in wildcards):
                result.append(current_path / filename)
    return result


def build_arg_parser():
    parser = argparse.ArgumentParser(prog = "vrcss-datetime-fixer",
                                     description = f"VRChat screenshot date fixer v.{__version__} - sets file timestamps and EXIF DateTimeOriginal from screenshot file names.")
    parser.add_argument("path", type = Path, help = "Screenshot file or directory.")
    parser.add_argument("-r", "--recursive", action = "store_true", help = "Process subdirectories.")
    parser.add_argument("--dirdepth", type = int, default = -1, metavar = "<int>", help = "Max directory depth with --recursive (-1 for no limit) [default: -1].")
    parser.add_argument("--wildcards", type = str, default = DEFAULT_WILDCARDS, metavar = "<str>", help = f"Comma-separated list of file patterns [default: '{DEFAULT_WILDCARDS}'].")
    parser.add_argument("--backend", choices = BACKENDS, default = BACKEND_AUTO, help = "Metadata backend [default: auto - exiftool if found, Pillow otherwise].")
    parser.add_argument("--exiftool", type = Path, default = None, metavar = "<file>", help = "Path to exiftool.")
    parser.add_argument("--retries", type = int, default = RETRY_ATTEMPTS - 1, metavar = "<int>", help = f"Retries of a failed timestamp update [default: {RETRY_ATTEMPTS - 1}].")
    parser.add_argument("-v", "--verbose", action = "store_true", help = "Verbose logging.")
    return parser


def main(argv = None):
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(level = logging.DEBUG if args.verbose else logging.WARNING, format = "%(message)s")

    base_path = args.path.resolve()
    if not base_path.exists():
        print(f"Error! Path not found: {args.path}", file = sys.stderr)
        return 1
    wildcards = [w.strip() for w in args.wildcards.split(",") if w.strip()]
    dir_depth = args.dirdepth if args.recursive else 0

    try:
        settings = resolve_exiftool(Settings.from_args(args))
        backend = get_backend(settings)
    except ValueError as e:
        print(e, file = sys.stderr)     #message already starts with 'Error!'
        return 1
    except FileNotFoundError as e:
        print(f"Error! {e}", file = sys.stderr)
        return 1

    #displaying parameters
    print(f"VRChat screenshot date fixer v.{__version__}")
    print(f"    Path            : {base_path}")
    print(f"    Directory depth : {dir_depth}")
    print(f"    Wildcards       : {wildcards}")
    print(f"    Backend         : {backend!r}")
    print(f"    Exiftool        : {settings.exiftool if settings.exiftool else '<not found>'}")
    print("")

    files = collect_files(base_path, wildcards, dir_depth)
    total = len(files)
    print(f"Processing {total} files...")
    file_counter = 0
    time_start = time.monotonic()
    for outcome in process_files(files, settings, backend):
        file_counter += 1
        print(f"{file_counter}. {outcome.path} >> {format_outcome(outcome)}")
        if total > 1 and (file_counter % PROGRESS_EVERY == 0 or file_counter == total):
            elapsed = time.monotonic() - time_start
            remaining = elapsed * (total - file_counter) / file_counter
            print(f"Progress: {file_counter}/{total} ({file_counter * 100 // total}%)"
                  f" elapsed {format_duration(elapsed)}, remaining {format_duration(remaining)}")

    print(f"Finished. Processed {file_counter} files in {format_duration(time.monotonic() - time_start)}.")
    return 0
