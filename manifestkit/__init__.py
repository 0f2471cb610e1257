"""
ManifestKit - Streaming Manifest Mirroring Toolkit

Mirrors an HLS or DASH manifest and every resource it references into a local
directory, rewriting all references so the mirrored tree plays standalone.

Features:
- Walk HLS master/media playlists and DASH MPDs, including media groups
- Mirror segments, init segments, sidx indexes and AES-128 keys
- Optionally decrypt AES-128 segments and strip key lines
- Bounded-concurrency downloads with retries and deduplication

Example usage:
    >>> from manifestkit import ManifestMirror
    >>>
    >>> mirror = ManifestMirror()
    >>> resources = mirror.mirror(
    ...     url="https://example.com/hls/master.m3u8",
    ...     output_dir="local/mirror",
    ...     concurrency=10,
    ... )
"""

import logging

__version__ = "0.1.0"
__author__ = "ManifestKit Contributors"
__license__ = "MIT"

# Add NullHandler to prevent "No handler found" warnings
# Users should configure logging in their application if they want to see logs
logging.getLogger(__name__).addHandler(logging.NullHandler())

# URI and path utilities
from .utils import (
    is_absolute,
    join_uri,
    resolve_uri,
    strip_query,
    fs_sanitize,
    url_basename,
    relative_reference,
    replace_reference,
    remove_reference_line,
    parse_iv,
    derive_iv,
)

# Format adapters
from .formats import parse_manifest, parse_hls, parse_dash, is_hls_playlist, is_dash_manifest

# Main classes
from .client import HTTPClient, create_session
from .walker import ManifestWalker, walk_manifest
from .writer import write_data, write_file, decrypt_segment, rename_root_manifest
from .mirror import ManifestMirror, mirror_manifest

# Data models
from .models import (
    Manifest,
    Segment,
    Key,
    ParsedPlaylist,
    PlaylistRef,
    SegmentRef,
    KeyRef,
    MirrorConfig,
)

# Exceptions
from .exceptions import ManifestKitError, MirrorError, KeyFetchError, DecryptionError

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",

    # URI and path utilities
    "is_absolute",
    "join_uri",
    "resolve_uri",
    "strip_query",
    "fs_sanitize",
    "url_basename",
    "relative_reference",
    "replace_reference",
    "remove_reference_line",
    "parse_iv",
    "derive_iv",

    # Format adapters
    "parse_manifest",
    "parse_hls",
    "parse_dash",
    "is_hls_playlist",
    "is_dash_manifest",

    # Main classes
    "HTTPClient",
    "ManifestWalker",
    "ManifestMirror",

    # Pipeline functions
    "create_session",
    "walk_manifest",
    "write_data",
    "write_file",
    "decrypt_segment",
    "rename_root_manifest",
    "mirror_manifest",

    # Models
    "Manifest",
    "Segment",
    "Key",
    "ParsedPlaylist",
    "PlaylistRef",
    "SegmentRef",
    "KeyRef",
    "MirrorConfig",

    # Exceptions
    "ManifestKitError",
    "MirrorError",
    "KeyFetchError",
    "DecryptionError",
]
