"""
HLS (M3U8) adapter for ManifestKit.

Converts a playlist parsed by the ``m3u8`` library into the normalized
``ParsedPlaylist`` shape. URIs are kept exactly as written in the playlist
body so that the walker can rewrite them in place.
"""

import logging
from typing import Any, Dict, Optional

import m3u8

from ..models import KeyRef, ParsedPlaylist, PlaylistRef, SegmentRef
from ..utils import parse_iv

logger = logging.getLogger(__name__)

STREAM_INFO_FIELDS = (
    "bandwidth",
    "average_bandwidth",
    "resolution",
    "codecs",
    "frame_rate",
    "audio",
    "video",
    "subtitles",
    "closed_captions",
)


def is_hls_playlist(content: str) -> bool:
    """
    Check if content is an HLS playlist (M3U8 format).

    Args:
        content: Content to check

    Returns:
        True if content is HLS playlist, False otherwise
    """
    return content.lstrip("\ufeff").strip().startswith("#EXTM3U")


def _key_ref(key: Any) -> Optional[KeyRef]:
    if key is None or not key.uri:
        return None
    if (key.method or "").upper() == "NONE":
        return None
    return KeyRef(uri=key.uri, method=key.method, iv=parse_iv(key.iv))


def _stream_attributes(stream_info: Any) -> Dict[str, Any]:
    if stream_info is None:
        return {}
    attributes = {}
    for name in STREAM_INFO_FIELDS:
        value = getattr(stream_info, name, None)
        if value is not None:
            attributes[name] = value
    return attributes


def parse_hls(content: str) -> ParsedPlaylist:
    """
    Parse an M3U8 body into a normalized playlist.

    Args:
        content: Playlist text

    Returns:
        ParsedPlaylist with segments (including init maps and keys), variant
        playlists and ``EXT-X-MEDIA`` renditions grouped by type, group id
        and name.

    Example:
        >>> parsed = parse_hls("#EXTM3U\\n#EXTINF:4,\\nseg0.ts\\n#EXT-X-ENDLIST\\n")
        >>> parsed.segments[0].uri
        'seg0.ts'
    """
    playlist = m3u8.loads(content)

    segments = []
    for segment in playlist.segments:
        init_map = None
        if segment.init_section is not None and segment.init_section.uri:
            init_map = SegmentRef(
                uri=segment.init_section.uri,
                byterange=segment.init_section.byterange,
            )
        segments.append(SegmentRef(
            uri=segment.uri,
            duration=segment.duration,
            byterange=segment.byterange,
            key=_key_ref(segment.key),
            map=init_map,
        ))

    playlists = [
        PlaylistRef(uri=variant.uri, attributes=_stream_attributes(variant.stream_info))
        for variant in playlist.playlists
    ]

    media_groups: Dict[str, Dict[str, Dict[str, PlaylistRef]]] = {}
    for media in playlist.media:
        if not media.type:
            continue
        group = media_groups.setdefault(media.type.upper(), {}).setdefault(media.group_id or "", {})
        name = media.name or media.language or str(len(group))
        group[name] = PlaylistRef(uri=media.uri, attributes={
            "language": media.language,
            "default": media.default,
            "autoselect": media.autoselect,
        })

    logger.debug(
        f"Parsed HLS playlist: {len(segments)} segments, {len(playlists)} variants, "
        f"{len(playlist.media)} renditions"
    )
    return ParsedPlaylist(
        segments=segments,
        playlists=playlists,
        media_groups=media_groups,
        media_sequence=playlist.media_sequence or 0,
    )
