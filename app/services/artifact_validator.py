"""Upload validation: filename sanitizing, type allow-lists and magic-byte sniffing.

Nothing here touches storage or the database; the validator only decides.
"""

import posixpath
import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.exceptions import ValidationError
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

MAX_FILENAME_LENGTH = 200

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")

# Client-declared types that carry no information and are ignored
GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def _is_pdf(data: bytes) -> bool:
    return data.startswith(b"%PDF")


def _is_mp3(data: bytes) -> bool:
    if data.startswith(b"ID3"):
        return True
    # MPEG audio frame sync: 11 set bits
    return len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0


def _is_iso_media(data: bytes) -> bool:
    return len(data) >= 8 and data[4:8] == b"ftyp"


def _is_zip(data: bytes) -> bool:
    return data.startswith(b"PK\x03\x04")


def _is_wav(data: bytes) -> bool:
    return len(data) >= 12 and data.startswith(b"RIFF") and data[8:12] == b"WAVE"


def _is_ogg(data: bytes) -> bool:
    return data.startswith(b"OggS")


def _is_webm(data: bytes) -> bool:
    # EBML header
    return data.startswith(b"\x1a\x45\xdf\xa3")


def _is_text(data: bytes) -> bool:
    if b"\x00" in data[:8192]:
        return False
    try:
        data[:8192].decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte character cut at the sample boundary is still text
        return e.start >= 8192 - 4
    return True


@dataclass(frozen=True)
class FileKind:
    extension: str
    category: str
    mime_type: str
    aliases: frozenset
    sniff: Callable[[bytes], bool]


_KINDS = [
    FileKind("mp3", "audio", "audio/mpeg", frozenset({"audio/mp3", "audio/mpeg3", "audio/x-mpeg-3"}), _is_mp3),
    FileKind("m4a", "audio", "audio/mp4", frozenset({"audio/x-m4a", "audio/m4a", "audio/aac"}), _is_iso_media),
    FileKind("wav", "audio", "audio/wav", frozenset({"audio/x-wav", "audio/wave", "audio/vnd.wave"}), _is_wav),
    FileKind("webm", "audio", "audio/webm", frozenset({"video/webm"}), _is_webm),
    FileKind("ogg", "audio", "audio/ogg", frozenset({"application/ogg", "video/ogg"}), _is_ogg),
    FileKind("mp4", "video", "video/mp4", frozenset({"audio/mp4", "application/mp4"}), _is_iso_media),
    FileKind("mov", "video", "video/quicktime", frozenset(), _is_iso_media),
    FileKind("pdf", "document", "application/pdf", frozenset({"application/x-pdf"}), _is_pdf),
    FileKind(
        "docx", "document",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        frozenset({"application/zip"}), _is_zip,
    ),
    FileKind(
        "pptx", "document",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        frozenset({"application/zip"}), _is_zip,
    ),
    FileKind("txt", "document", "text/plain", frozenset({"text/markdown"}), _is_text),
]

KINDS_BY_EXTENSION = {kind.extension: kind for kind in _KINDS}

ALLOWED_MIME_TYPES = frozenset(
    mime for kind in _KINDS for mime in (kind.mime_type, *kind.aliases)
)


@dataclass
class ArtifactDecision:
    """Outcome of validating one upload."""

    accepted: bool
    filename: str
    mime_type: Optional[str] = None
    category: Optional[str] = None
    reason: Optional[str] = None

    def raise_for_rejection(self) -> "ArtifactDecision":
        if not self.accepted:
            raise ValidationError(self.reason or "Invalid file")
        return self


def sanitize_filename(filename: Optional[str]) -> str:
    """Reduce a client filename to a safe basename.

    Path components and control characters are dropped, other unsafe
    characters become underscores, and a leading dot gets an underscore prefix.
    """
    name = (filename or "").replace("\\", "/")
    name = posixpath.basename(name)
    name = "".join(ch for ch in name if unicodedata.category(ch)[0] != "C")
    name = _UNSAFE_CHARS.sub("_", name.strip())
    name = re.sub(r"_{2,}", "_", name)

    if not name or set(name) <= {".", "_"}:
        name = "upload"
    if name.startswith("."):
        name = f"_{name}"

    if len(name) > MAX_FILENAME_LENGTH:
        stem, dot, extension = name.rpartition(".")
        if dot and len(extension) <= 10:
            name = stem[: MAX_FILENAME_LENGTH - len(extension) - 1] + "." + extension
        else:
            name = name[:MAX_FILENAME_LENGTH]
    return name


def file_extension(filename: str) -> str:
    _, dot, extension = filename.rpartition(".")
    return extension.lower() if dot else ""


class ArtifactValidator:
    """Accepts or rejects an uploaded artifact before it is stored."""

    def __init__(self, max_size_bytes: int):
        self.max_size_bytes = max_size_bytes

    def check_size(self, size: Optional[int]) -> Optional[str]:
        """Return a rejection reason for the size, or None when it fits."""
        if size is None:
            return None
        if size <= 0:
            return "File is empty"
        if size > self.max_size_bytes:
            limit_mb = self.max_size_bytes // (1024 * 1024)
            return f"File exceeds the maximum upload size of {limit_mb} MB"
        return None

    def validate(
        self,
        filename: Optional[str],
        declared_mime_type: Optional[str],
        data: bytes,
    ) -> ArtifactDecision:
        """Decide whether the upload may be stored and processed."""
        safe_name = sanitize_filename(filename)

        size_problem = self.check_size(len(data))
        if size_problem:
            return self._reject(safe_name, size_problem)

        extension = file_extension(safe_name)
        kind = KINDS_BY_EXTENSION.get(extension)
        if kind is None:
            allowed = ", ".join(sorted(KINDS_BY_EXTENSION))
            return self._reject(safe_name, f"File type '.{extension or '?'}' is not allowed. Allowed: {allowed}")

        declared = (declared_mime_type or "").split(";", 1)[0].strip().lower()
        if declared not in GENERIC_MIME_TYPES:
            if declared not in ALLOWED_MIME_TYPES:
                return self._reject(safe_name, f"Content type '{declared}' is not allowed")
            if declared != kind.mime_type and declared not in kind.aliases:
                return self._reject(
                    safe_name,
                    f"Declared content type '{declared}' does not match .{extension} file",
                )

        if not kind.sniff(data):
            return self._reject(
                safe_name,
                f"File content does not match the .{extension} format",
            )

        return ArtifactDecision(
            accepted=True,
            filename=safe_name,
            mime_type=kind.mime_type,
            category=kind.category,
        )

    @staticmethod
    def _reject(filename: str, reason: str) -> ArtifactDecision:
        LOGGER.warning("Upload rejected", extra={"upload_filename": filename, "reason": reason})
        return ArtifactDecision(accepted=False, filename=filename, reason=reason)
