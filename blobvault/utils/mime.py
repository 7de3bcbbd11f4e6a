"""Helpers for naming stored objects after their hash and MIME type"""
import mimetypes
import re
from typing import Optional

SHA256_RE = re.compile(r'[0-9a-f]{64}')


def is_sha256(value) -> bool:
    """Check for a 64-character lowercase hex digest"""
    return isinstance(value, str) and SHA256_RE.fullmatch(value) is not None


def extension_for(type: Optional[str]) -> str:
    """
    File extension (without the dot) for a MIME type.

    Parameters such as "; charset=utf-8" are ignored.
    Returns '' when the type is missing or unknown.
    """
    if not type:
        return ''
    base = type.split(';', 1)[0].strip().lower()
    ext = mimetypes.guess_extension(base, strict=False)
    return ext[1:] if ext else ''


def type_for(name: str) -> Optional[str]:
    """MIME type guessed from an object or file name"""
    type, _ = mimetypes.guess_type(name, strict=False)
    return type


def object_name(sha256: str, type: Optional[str] = None) -> str:
    """Object name for a blob: the hash plus an extension derived from its type"""
    ext = extension_for(type)
    return f"{sha256}.{ext}" if ext else sha256
