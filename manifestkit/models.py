"""
Data models for ManifestKit.

Defines the resource records produced by the manifest walker, the normalized
playlist structure produced by the format adapters, and the run configuration.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Union


MEDIA_GROUP_TYPES = ("AUDIO", "VIDEO", "CLOSED-CAPTIONS", "SUBTITLES")


@dataclass
class KeyRef:
    """Encryption key reference as declared by a playlist."""
    uri: str
    method: str = "AES-128"
    iv: Optional[bytes] = None


@dataclass
class SegmentRef:
    """Segment reference as declared by a playlist (media, init map or sidx)."""
    uri: Optional[str]
    resolved_uri: Optional[str] = None
    duration: Optional[float] = None
    byterange: Optional[str] = None
    key: Optional[KeyRef] = None
    map: Optional["SegmentRef"] = None


@dataclass
class PlaylistRef:
    """
    Child playlist reference.

    HLS children carry the literal ``uri`` found in the parent body. DASH
    children have no URI of their own and carry their already-parsed
    playlist in ``parsed``.
    """
    uri: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    parsed: Optional["ParsedPlaylist"] = None


@dataclass
class ParsedPlaylist:
    """Normalized playlist shape shared by HLS and DASH sources."""
    segments: List[SegmentRef] = field(default_factory=list)
    playlists: List[PlaylistRef] = field(default_factory=list)
    media_groups: Dict[str, Dict[str, Dict[str, PlaylistRef]]] = field(default_factory=dict)
    media_sequence: int = 0
    is_dash: bool = False
    sidx: Optional[SegmentRef] = None
    dash_attributes: Optional[Dict[str, Any]] = None

    def media_group_playlists(self) -> List[PlaylistRef]:
        """Flatten media groups in AUDIO, VIDEO, CLOSED-CAPTIONS, SUBTITLES order."""
        playlists = []
        for group_type in MEDIA_GROUP_TYPES:
            for group in self.media_groups.get(group_type, {}).values():
                playlists.extend(group.values())
        return playlists

    def children(self) -> List[PlaylistRef]:
        """Variant playlists followed by every media group playlist."""
        return list(self.playlists) + self.media_group_playlists()


@dataclass(eq=False)
class Key:
    """AES-128 key resource shared by the segments of one manifest."""
    uri: str
    file: Optional[str] = None
    method: str = "AES-128"
    iv: Optional[bytes] = None
    material: Optional[bytes] = None


@dataclass(eq=False)
class Segment:
    """Leaf resource: media segment, init segment or synthesized sidx segment."""
    uri: str
    file: str
    byterange: Optional[str] = None
    key: Optional[Key] = None
    iv: Optional[bytes] = None


@dataclass(eq=False)
class Manifest:
    """
    A node of the resource graph.

    ``content`` holds the manifest body and is rewritten as children, keys and
    segments are resolved to local files. DASH pseudo-manifests (renditions
    expanded from an MPD) have no content of their own.
    """
    uri: str
    file: str
    parent: Optional["Manifest"] = None
    content: Optional[str] = None
    parsed: Optional[ParsedPlaylist] = None
    index: int = 0
    is_dash_playlist: bool = False

    def __repr__(self) -> str:
        return f"Manifest(uri={self.uri!r}, file={self.file!r})"


Resource = Union[Manifest, Segment, Key]


@dataclass
class MirrorConfig:
    """Configuration for a mirroring run."""
    url: str
    output_dir: str
    concurrency: int = 10
    decrypt: bool = False
    request_timeout: float = 15
    segment_timeout: float = 30
    retries: int = 3
    walk_concurrency: int = 8
    verify_ssl: bool = True
