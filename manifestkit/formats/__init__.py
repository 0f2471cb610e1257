"""
Manifest format adapters for ManifestKit.

Both adapters produce the same ``ParsedPlaylist`` shape, so the walker never
needs to know which format a manifest came from.
"""

from ..models import ParsedPlaylist
from .dash import MPDParser, expand_template, is_dash_manifest, parse_dash, parse_seconds
from .hls import is_hls_playlist, parse_hls


def parse_manifest(content: str, content_type: str = "", uri: str = "") -> ParsedPlaylist:
    """
    Parse a manifest body as DASH or HLS.

    Args:
        content: Manifest text
        content_type: Content-type header of the response
        uri: Absolute URI of the manifest (base for DASH BaseURL resolution)

    Returns:
        ParsedPlaylist
    """
    if is_dash_manifest(content, content_type):
        return parse_dash(content, uri)
    return parse_hls(content)


__all__ = [
    "parse_manifest",
    "parse_hls",
    "parse_dash",
    "is_hls_playlist",
    "is_dash_manifest",
    "expand_template",
    "parse_seconds",
    "MPDParser",
]
