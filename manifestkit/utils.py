"""
URI and path utilities for ManifestKit.

Pure functions for resolving playlist references, deriving filesystem-safe
local names from URIs, and rewriting references inside manifest bodies.
"""

import os
import posixpath
import re
import struct
from typing import Optional
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

# Characters that are invalid in file names on common filesystems
INVALID_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')

MAX_FILENAME_BYTES = 255

DEFAULT_BASENAME = "resource"


def is_absolute(uri: str) -> bool:
    """
    Check whether a URI carries its own scheme.

    Args:
        uri: URI to check

    Returns:
        True if the URI is absolute, False if it must be resolved

    Example:
        >>> is_absolute("https://example.com/index.m3u8")
        True
        >>> is_absolute("low/index.m3u8")
        False
    """
    return bool(urlsplit(uri).scheme)


def join_uri(base: str, relative: str) -> str:
    """
    Resolve a relative reference against the directory of ``base``.

    URL semantics apply: the path is joined, the query and fragment of the
    relative reference are kept and those of ``base`` are dropped.

    Example:
        >>> join_uri("https://example.com/hls/master.m3u8?token=1", "low/index.m3u8")
        'https://example.com/hls/low/index.m3u8'
    """
    return urljoin(base, relative)


def resolve_uri(base: str, uri: str) -> str:
    """Return ``uri`` unchanged if absolute, otherwise resolved against ``base``."""
    if is_absolute(uri):
        return uri
    return join_uri(base, uri)


def strip_query(uri: str) -> str:
    """
    Remove the query string and fragment from a URI.

    Example:
        >>> strip_query("https://cdn.example.com/seg1.ts?token=abc")
        'https://cdn.example.com/seg1.ts'
    """
    parts = urlsplit(uri)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def fs_sanitize(name: str) -> str:
    """
    Turn a single path component into a filesystem-safe file name.

    Percent-escapes are decoded, invalid characters are removed, and the
    result is capped at 255 bytes.

    Example:
        >>> fs_sanitize("seg%201.ts")
        'seg 1.ts'
    """
    name = INVALID_FILENAME_CHARS.sub("", unquote(name))
    name = name.strip().rstrip(".")
    if name in ("", ".", ".."):
        return ""

    encoded = name.encode("utf-8")
    if len(encoded) > MAX_FILENAME_BYTES:
        name = encoded[:MAX_FILENAME_BYTES].decode("utf-8", errors="ignore")
    return name


def url_basename(uri: str) -> str:
    """
    Derive a local file name from the path of a URI, ignoring its query.

    Example:
        >>> url_basename("https://example.com/hls/low/index.m3u8?token=1")
        'index.m3u8'
    """
    path = urlsplit(uri).path
    return fs_sanitize(posixpath.basename(path)) or DEFAULT_BASENAME


def relative_reference(from_file: str, to_file: str) -> str:
    """
    Relative path from the directory of ``from_file`` to ``to_file``.

    Always uses forward slashes so it can be written into a manifest body.

    Example:
        >>> relative_reference("out/master.m3u8", "out/manifest0/index.m3u8")
        'manifest0/index.m3u8'
    """
    relative = os.path.relpath(to_file, os.path.dirname(from_file) or ".")
    return relative.replace(os.sep, "/")


def replace_reference(content: Optional[str], old: str, new: str) -> Optional[str]:
    """
    Replace every reference to ``old`` inside a manifest body with ``new``.

    A reference is either a whole line (HLS segment and variant URIs) or a
    quoted attribute value such as ``URI="..."``. Substrings of longer URIs
    are left alone.

    Args:
        content: Manifest body, or None for manifests without a body
        old: Literal reference as it appears in the body
        new: Replacement reference

    Returns:
        The rewritten body (None if ``content`` was None)
    """
    if content is None or not old:
        return content

    pattern = re.compile(r'(^[ \t]*|")' + re.escape(old) + r'(?=[ \t]*\r?$|")', re.MULTILINE)
    return pattern.sub(lambda match: match.group(1) + new, content)


def remove_reference_line(content: Optional[str], uri: str) -> Optional[str]:
    """
    Remove every line that declares ``URI="<uri>"`` from a manifest body.

    Used to drop ``#EXT-X-KEY`` lines once segments are written decrypted.
    """
    if content is None or not uri:
        return content

    pattern = re.compile(r'^.*URI="' + re.escape(uri) + r'".*(?:\r?\n|$)', re.MULTILINE)
    return pattern.sub("", content)


def parse_iv(value: Optional[str]) -> Optional[bytes]:
    """
    Parse an HLS ``IV=0x...`` attribute into 16 bytes.

    Example:
        >>> parse_iv("0x1").hex()
        '00000000000000000000000000000001'
    """
    if not value:
        return None

    value = value.strip()
    if value[:2].lower() == "0x":
        value = value[2:]
    return bytes.fromhex(value.zfill(32))[-16:]


def derive_iv(media_sequence: int, segment_index: int) -> bytes:
    """
    Derive the IV of a segment whose key declares none.

    The IV is the big-endian 4-word vector ``[0, 0, media_sequence, segment_index]``.

    Example:
        >>> derive_iv(7, 2).hex()
        '00000000000000000000000700000002'
    """
    return struct.pack(">4I", 0, 0, media_sequence & 0xFFFFFFFF, segment_index & 0xFFFFFFFF)
