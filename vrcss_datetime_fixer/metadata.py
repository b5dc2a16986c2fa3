import io
import logging
import shutil
import struct
import sys
import zlib
from dataclasses import replace
from pathlib import Path
from typing import Optional

import exiftool
import piexif
from exiftool.exceptions import ExifToolExecuteError
from PIL import Image, UnidentifiedImageError

from .config import BACKEND_AUTO, BACKEND_EXIFTOOL, BACKEND_PILLOW, DEFAULT_SETTINGS
from .errors import Failure, MetadataError

log = logging.getLogger(__name__)

#Messages exiftool prints when it can't get hold of a file held open by someone else
_EXIFTOOL_LOCK_MESSAGES = ("error opening file", "permission denied", "being used by another process", "error renaming")


#Get exiftool executable name
def exiftool_getname():
    return "exiftool.exe" if sys.platform.startswith("win") else "exiftool"

#Find exiftool
def exiftool_find(search_list = None) -> str:
    if isinstance(search_list, (tuple, list)): search_list = list(search_list)
    elif isinstance(search_list, (str, Path)): search_list = [Path(search_list)]
    else: search_list = []

    #add script directory path to search list
    search_list.append(Path(sys.argv[0]).resolve().parent)

    #search in the search list
    for path in search_list:
        path = Path(path)
        if path.name != exiftool_getname() and not path.is_file():
            path = path / exiftool_getname()
        if path.is_file():
            return str(path)

    #search in system PATH
    path = shutil.which("exiftool")
    if path: return path

    #not found
    raise FileNotFoundError("ExifTool executable not found in manual path, script directory or system PATH.")

#Find exiftool, None if it's not available
def exiftool_lookup(search_list = None) -> Optional[str]:
    try:
        return exiftool_find(search_list)
    except FileNotFoundError:
        return None

#Settings with exiftool path resolved once for a whole run (None if it isn't found)
def resolve_exiftool(settings):
    executable = exiftool_lookup(settings.exiftool)
    if executable is None: return replace(settings, exiftool = None)
    return replace(settings, exiftool = Path(executable))

#Write filesystem creation date through exiftool (value: "YYYY:MM:DD hh:mm:ss.fff±hh:mm")
def exiftool_set_file_create_date(executable: str, file_path: Path, value: str):
    with exiftool.ExifToolHelper(executable = executable) as exif:
        exif.execute(f"-FileCreateDate={value}", str(file_path))


def _exiftool_failure(e: ExifToolExecuteError) -> Failure:
    stderr = str(getattr(e, 'stderr', '') or '').lower()
    if any(message in stderr for message in _EXIFTOOL_LOCK_MESSAGES): return Failure.EXCLUSIVE_LOCK_CONFLICT
    return Failure.UNSUPPORTED_OR_CORRUPT_IMAGE


# Metadata backends. Both expose:
#   write_date_original(source, target, value) - write copy of source with DateTimeOriginal=value to target
#   read_date_original(path) - current DateTimeOriginal or None
# Load/encode problems are raised as MetadataError, target is never the source.

class ExifToolBackend:
    name = BACKEND_EXIFTOOL

    def __init__(self, executable: str):
        self.executable = executable

    def write_date_original(self, source: Path, target: Path, value: str):
        try:
            with exiftool.ExifToolHelper(executable = self.executable) as exif:
                #-o writes a new file of the same type, source stays untouched
                exif.execute(f"-EXIF:DateTimeOriginal={value}", "-o", str(target), str(source))
        except ExifToolExecuteError as e:
            raise MetadataError(_exiftool_failure(e), str(getattr(e, 'stderr', '') or e).strip()) from e

    def read_date_original(self, path: Path) -> Optional[str]:
        with exiftool.ExifToolHelper(executable = self.executable) as exif:
            tags = exif.get_tags(str(path), ['EXIF:DateTimeOriginal'])[0]
        return tags.get('EXIF:DateTimeOriginal')

    def __repr__(self):
        return f"ExifToolBackend({self.executable!r})"


def _empty_exif_dict():
    return {'0th': {}, 'Exif': {}, 'GPS': {}, 'Interop': {}, '1st': {}, 'thumbnail': None}

#Decode raw EXIF block (or empty container if image has none)
def _load_exif_dict(raw) -> dict:
    if not raw: return _empty_exif_dict()
    return piexif.load(raw)

_PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'

#Split PNG data into raw chunks (length + type + data + crc), each as (type, bytes)
def _png_chunks(data: bytes):
    if not data.startswith(_PNG_SIGNATURE): raise ValueError("not a PNG file")
    pos = len(_PNG_SIGNATURE)
    while pos < len(data):
        if pos + 8 > len(data): raise ValueError("truncated PNG chunk header")
        length, = struct.unpack('>I', data[pos:pos + 4])
        chunk_type = data[pos + 4:pos + 8]
        end = pos + 12 + length
        if end > len(data): raise ValueError(f"truncated PNG chunk {chunk_type!r}")
        yield chunk_type, data[pos:end]
        pos = end

def _png_chunk(chunk_type: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(chunk_type + payload) & 0xffffffff
    return struct.pack('>I', len(payload)) + chunk_type + payload + struct.pack('>I', crc)

#Replace eXIf chunk of PNG data, every other chunk is kept byte for byte
def png_insert_exif(exif_bytes: bytes, data: bytes) -> bytes:
    if exif_bytes.startswith(b'Exif\x00\x00'): exif_bytes = exif_bytes[6:]
    result = [_PNG_SIGNATURE]
    inserted = False
    for chunk_type, raw in _png_chunks(data):
        if chunk_type == b'eXIf': continue
        if chunk_type == b'IDAT' and not inserted:
            result.append(_png_chunk(b'eXIf', exif_bytes))    #eXIf must precede image data
            inserted = True
        result.append(raw)
    if not inserted: raise ValueError("PNG has no image data")
    return b''.join(result)


class PillowBackend:
    name = BACKEND_PILLOW

    def write_date_original(self, source: Path, target: Path, value: str):
        try:
            data = Path(source).read_bytes()
        except PermissionError as e:
            raise MetadataError(Failure.EXCLUSIVE_LOCK_CONFLICT, str(e)) from e

        try:
            img = Image.open(io.BytesIO(data))
        except (UnidentifiedImageError, SyntaxError, ValueError) as e:
            raise MetadataError(Failure.UNSUPPORTED_OR_CORRUPT_IMAGE, str(e)) from e

        with img:
            #load: decode image (validation only) and its metadata container
            try:
                img.load()
                image_format = img.format
                if image_format not in ('JPEG', 'PNG'):
                    raise MetadataError(Failure.UNSUPPORTED_OR_CORRUPT_IMAGE, f"unsupported image format '{image_format}'")
                exif_dict = _load_exif_dict(data if image_format == 'JPEG' else img.info.get('exif'))
                exif_dict['Exif'][piexif.ExifIFD.DateTimeOriginal] = value.encode('ascii')
                exif_bytes = piexif.dump(exif_dict)
                if image_format == 'PNG': new_data = png_insert_exif(exif_bytes, data)
            except (piexif.InvalidImageDataError, SyntaxError, ValueError, struct.error, OSError) as e:
                raise MetadataError(Failure.UNSUPPORTED_OR_CORRUPT_IMAGE, str(e)) from e

        #encode: new metadata is spliced into the original bytes, image data is never recompressed
        try:
            if image_format == 'JPEG':
                piexif.insert(exif_bytes, data, str(target))
            else:
                Path(target).write_bytes(new_data)
        except PermissionError as e:
            raise MetadataError(Failure.EXCLUSIVE_LOCK_CONFLICT, str(e)) from e

    def read_date_original(self, path: Path) -> Optional[str]:
        with Image.open(path) as img:
            exif_dict = _load_exif_dict(img.info.get('exif'))
        value = exif_dict['Exif'].get(piexif.ExifIFD.DateTimeOriginal)
        if value is None: return None
        return value.decode('ascii') if isinstance(value, bytes) else str(value)

    def __repr__(self):
        return "PillowBackend()"


#Pick metadata backend according to settings
def get_backend(settings = None):
    settings = settings or DEFAULT_SETTINGS
    if settings.backend == BACKEND_PILLOW:
        return PillowBackend()
    if settings.backend == BACKEND_EXIFTOOL:
        return ExifToolBackend(exiftool_find(settings.exiftool))
    if settings.backend == BACKEND_AUTO:
        executable = exiftool_lookup(settings.exiftool)
        if executable: return ExifToolBackend(executable)
        log.debug("ExifTool not found, using Pillow backend")
        return PillowBackend()
    raise ValueError(f"Error! Unknown metadata backend '{settings.backend}'.")
