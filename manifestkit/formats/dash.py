"""
DASH (MPD) adapter for ManifestKit.

Converts the Period / AdaptationSet / Representation model of an MPD into the
same normalized shape used for HLS: video representations become playlists,
audio representations become ``AUDIO`` media groups and text representations
become ``SUBTITLES`` media groups. Each representation is a pseudo-playlist
whose segments are already resolved to absolute URIs.

Supported segment addressing:
- SegmentTemplate with SegmentTimeline (including ``r="-1"``) or fixed duration
- SegmentList with SegmentURL entries
- SegmentBase (single file) with optional Initialization and ``indexRange``
"""

import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from isodate import Duration, parse_duration
from lxml import etree

from ..models import ParsedPlaylist, PlaylistRef, SegmentRef

logger = logging.getLogger(__name__)

TEMPLATE_IDENTIFIER = re.compile(r"\$(RepresentationID|Number|Bandwidth|Time|SubNumber)?(?:%0(\d+)d)?\$")

# Attributes a Representation inherits from its AdaptationSet
INHERITED_ATTRIBUTES = (
    "mimeType",
    "contentType",
    "codecs",
    "lang",
    "bandwidth",
    "width",
    "height",
    "frameRate",
    "audioSamplingRate",
)

TEXT_CODECS = ("stpp", "wvtt")


def is_dash_manifest(content: str, content_type: Optional[str] = "") -> bool:
    """
    Check whether a manifest body is a DASH MPD.

    Either the content-type is ``application/dash+xml`` or the body starts
    with an XML declaration (or a bare ``<MPD`` element).
    """
    if re.match(r"^application/dash\+xml", content_type or "", re.IGNORECASE):
        return True
    text = content.lstrip("\ufeff").lstrip()
    return bool(re.match(r"^<\?xml", text, re.IGNORECASE)) or text.startswith("<MPD")


def parse_seconds(value: Optional[str]) -> Optional[float]:
    """
    Parse an ISO-8601 duration such as ``PT1M30.5S`` into seconds.

    Example:
        >>> parse_seconds("PT1M30.5S")
        90.5
    """
    if not value:
        return None
    try:
        duration = parse_duration(value)
    except ValueError:
        logger.warning(f"Invalid ISO-8601 duration: {value}")
        return None
    if isinstance(duration, Duration):
        duration = duration.totimedelta(start=datetime(1970, 1, 1))
    return duration.total_seconds()


def expand_template(template: str, values: Dict[str, Any]) -> str:
    """
    Substitute ``$Identifier$`` and ``$Identifier%0Nd$`` placeholders.

    Unknown identifiers are left untouched and ``$$`` becomes ``$``.

    Example:
        >>> expand_template("seg-$Number%05d$.m4s", {"Number": 42})
        'seg-00042.m4s'
    """
    def substitute(match):
        name, width = match.group(1), match.group(2)
        if name is None:
            return "$"
        value = values.get(name)
        if value is None:
            return match.group(0)
        if width:
            return str(value).zfill(int(width))
        return str(value)

    return TEMPLATE_IDENTIFIER.sub(substitute, template)


def _localname(element: Any) -> Optional[str]:
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def _children(element: Any, name: str) -> List[Any]:
    return [child for child in element.iterchildren() if _localname(child) == name]


def _child(element: Any, name: str) -> Optional[Any]:
    children = _children(element, name)
    return children[0] if children else None


def _base_url(element: Any, base: str) -> str:
    node = _child(element, "BaseURL")
    if node is not None and node.text and node.text.strip():
        return urljoin(base, node.text.strip())
    return base


def _merged(nodes: Sequence[Any], name: str) -> Tuple[Dict[str, str], List[Any]]:
    """
    Merge a segment-information element across the hierarchy.

    Returns the attributes with the most specific level winning, and the
    elements found ordered most specific first.
    """
    attributes: Dict[str, str] = {}
    elements: List[Any] = []
    for node in nodes:
        element = _child(node, name)
        if element is not None:
            attributes.update(element.attrib)
            elements.insert(0, element)
    return attributes, elements


def _first_child(elements: Sequence[Any], name: str) -> Optional[Any]:
    for element in elements:
        child = _child(element, name)
        if child is not None:
            return child
    return None


def _initialization(element: Optional[Any], base: str, values: Optional[Dict[str, Any]] = None) -> Optional[SegmentRef]:
    if element is None:
        return None
    source = element.get("sourceURL")
    uri = urljoin(base, expand_template(source, values or {})) if source else base
    return SegmentRef(uri=uri, resolved_uri=uri, byterange=element.get("range"))


class MPDParser:
    """
    Parser turning an MPD document into a normalized ``ParsedPlaylist``.

    Representations sharing an id across periods are concatenated into one
    rendition.
    """

    def __init__(self, content: str, manifest_uri: str):
        """
        Initialize MPD parser.

        Args:
            content: MPD XML text
            manifest_uri: Absolute URI the MPD was fetched from (base for BaseURL resolution)
        """
        self.content = content
        self.manifest_uri = manifest_uri

    def _load(self) -> Any:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, remove_comments=True)
        data = self.content.lstrip("\ufeff").encode("utf-8")
        return etree.fromstring(data, parser)

    def _period_durations(self, root: Any, periods: List[Any]) -> List[Optional[float]]:
        presentation = parse_seconds(root.get("mediaPresentationDuration"))
        starts = [parse_seconds(period.get("start")) for period in periods]
        durations = []
        for index, period in enumerate(periods):
            duration = parse_seconds(period.get("duration"))
            start = starts[index] or 0.0
            if duration is None and index + 1 < len(periods) and starts[index + 1] is not None:
                duration = starts[index + 1] - start
            if duration is None and index + 1 == len(periods) and presentation is not None:
                duration = presentation - start
            durations.append(duration)
        return durations

    def _attributes(self, adaptation: Any, representation: Any, fallback_id: str) -> Dict[str, Any]:
        attributes: Dict[str, Any] = {}
        for node in (adaptation, representation):
            for name in INHERITED_ATTRIBUTES:
                value = node.get(name)
                if value is not None:
                    attributes[name] = value
        attributes["id"] = representation.get("id") or fallback_id
        return attributes

    def _template_segments(
        self,
        nodes: Sequence[Any],
        attributes: Dict[str, Any],
        base: str,
        duration: Optional[float],
    ) -> List[SegmentRef]:
        template, elements = _merged(nodes, "SegmentTemplate")
        timescale = int(template.get("timescale", 1))
        start_number = int(template.get("startNumber", 1))
        values = {"RepresentationID": attributes["id"], "Bandwidth": attributes.get("bandwidth")}

        if template.get("initialization"):
            uri = urljoin(base, expand_template(template["initialization"], values))
            init_map = SegmentRef(uri=uri, resolved_uri=uri)
        else:
            init_map = _initialization(_first_child(elements, "Initialization"), base, values)

        media = template.get("media")
        if not media:
            return []

        # (number, time, duration in timescale units)
        entries: List[Tuple[int, int, int]] = []
        timeline = _first_child(elements, "SegmentTimeline")
        if timeline is not None:
            number = start_number
            time = 0
            for entry in _children(timeline, "S"):
                if entry.get("t") is not None:
                    time = int(entry.get("t"))
                length = int(entry.get("d"))
                repeat = int(entry.get("r", 0))
                if repeat < 0:
                    if duration is None:
                        repeat = 0
                    else:
                        repeat = max(0, math.ceil((duration * timescale - time) / length) - 1)
                for _ in range(repeat + 1):
                    entries.append((number, time, length))
                    number += 1
                    time += length
        elif template.get("duration"):
            length = int(template["duration"])
            if duration is None:
                logger.warning(f"Cannot count segments of representation {attributes['id']}: unknown period duration")
                return []
            count = math.ceil(duration * timescale / length)
            entries = [(start_number + i, i * length, length) for i in range(count)]

        segments = []
        for number, time, length in entries:
            uri = urljoin(base, expand_template(media, dict(values, Number=number, Time=time)))
            segments.append(SegmentRef(
                uri=uri,
                resolved_uri=uri,
                duration=length / timescale,
                map=init_map,
            ))
        return segments

    def _list_segments(self, nodes: Sequence[Any], base: str) -> List[SegmentRef]:
        attributes, elements = _merged(nodes, "SegmentList")
        timescale = int(attributes.get("timescale", 1))
        length = attributes.get("duration")
        init_map = _initialization(_first_child(elements, "Initialization"), base)

        segment_urls: List[Any] = []
        for element in elements:
            segment_urls = _children(element, "SegmentURL")
            if segment_urls:
                break

        segments = []
        for segment_url in segment_urls:
            media = segment_url.get("media")
            uri = urljoin(base, media) if media else base
            segments.append(SegmentRef(
                uri=uri,
                resolved_uri=uri,
                duration=int(length) / timescale if length else None,
                byterange=segment_url.get("mediaRange"),
                map=init_map,
            ))
        return segments

    def _base_segments(
        self,
        nodes: Sequence[Any],
        base: str,
        duration: Optional[float],
    ) -> Tuple[List[SegmentRef], Optional[SegmentRef]]:
        attributes, elements = _merged(nodes, "SegmentBase")
        init_map = _initialization(_first_child(elements, "Initialization"), base)
        segment = SegmentRef(uri=base, resolved_uri=base, duration=duration, map=init_map)

        sidx = None
        if attributes.get("indexRange"):
            # The index map points at the init segment through its resolved URI only
            sidx_map = None
            if init_map is not None:
                sidx_map = SegmentRef(uri=None, resolved_uri=init_map.resolved_uri, byterange=init_map.byterange)
            sidx = SegmentRef(uri=base, resolved_uri=base, byterange=attributes["indexRange"], map=sidx_map)
        return [segment], sidx

    def parse(self) -> ParsedPlaylist:
        """
        Parse the MPD.

        Returns:
            ParsedPlaylist whose children are DASH pseudo-playlists
        """
        root = self._load()
        mpd_base = _base_url(root, self.manifest_uri)
        periods = _children(root, "Period")
        durations = self._period_durations(root, periods)

        renditions: Dict[str, Dict[str, Any]] = {}
        for period_index, period in enumerate(periods):
            period_base = _base_url(period, mpd_base)
            duration = durations[period_index]

            for set_index, adaptation in enumerate(_children(period, "AdaptationSet")):
                set_base = _base_url(adaptation, period_base)

                for rep_index, representation in enumerate(_children(adaptation, "Representation")):
                    attributes = self._attributes(adaptation, representation, f"{set_index}-{rep_index}")
                    base = _base_url(representation, set_base)
                    nodes = (period, adaptation, representation)

                    sidx = None
                    if any(_child(node, "SegmentTemplate") is not None for node in nodes):
                        segments = self._template_segments(nodes, attributes, base, duration)
                    elif any(_child(node, "SegmentList") is not None for node in nodes):
                        segments = self._list_segments(nodes, base)
                    else:
                        segments, sidx = self._base_segments(nodes, base, duration)

                    rendition = renditions.get(attributes["id"])
                    if rendition is None:
                        renditions[attributes["id"]] = {
                            "attributes": attributes,
                            "segments": segments,
                            "sidx": sidx,
                        }
                    else:
                        rendition["segments"].extend(segments)
                        rendition["sidx"] = rendition["sidx"] or sidx

        playlists: List[PlaylistRef] = []
        media_groups: Dict[str, Dict[str, Dict[str, PlaylistRef]]] = {}
        for rendition in renditions.values():
            attributes = rendition["attributes"]
            child = ParsedPlaylist(
                segments=rendition["segments"],
                is_dash=True,
                sidx=rendition["sidx"],
                dash_attributes=attributes,
            )
            ref = PlaylistRef(uri=None, attributes=attributes, parsed=child)

            kind = _rendition_kind(attributes)
            if kind == "video":
                playlists.append(ref)
                continue

            group_type, group_id = ("AUDIO", "audio") if kind == "audio" else ("SUBTITLES", "subs")
            label = f"{attributes['lang']} ({attributes['id']})" if attributes.get("lang") else attributes["id"]
            media_groups.setdefault(group_type, {}).setdefault(group_id, {})[label] = ref

        logger.debug(f"Parsed MPD: {len(periods)} periods, {len(renditions)} representations")
        return ParsedPlaylist(playlists=playlists, media_groups=media_groups, is_dash=True)


def _rendition_kind(attributes: Dict[str, Any]) -> str:
    mime_type = (attributes.get("mimeType") or "").lower()
    content_type = (attributes.get("contentType") or mime_type.split("/")[0]).lower()
    codecs = (attributes.get("codecs") or "").lower()

    if content_type == "text" or mime_type == "application/ttml+xml" or codecs.startswith(TEXT_CODECS):
        return "text"
    if content_type == "audio":
        return "audio"
    return "video"


def _append_sidx(playlist: ParsedPlaylist) -> None:
    """Add a representation's sidx reference as a trailing segment."""
    sidx = playlist.sidx
    if sidx is None:
        return
    if sidx.map is not None and not sidx.map.uri:
        sidx.map.uri = sidx.map.resolved_uri
    playlist.segments.append(sidx)


def parse_dash(content: str, manifest_uri: str) -> ParsedPlaylist:
    """
    Parse an MPD into a normalized playlist.

    Args:
        content: MPD XML text
        manifest_uri: Absolute URI of the MPD

    Returns:
        ParsedPlaylist whose playlists and media groups carry the parsed
        representations; sidx references are appended to their segments.
    """
    parsed = MPDParser(content, manifest_uri).parse()
    for child in parsed.children():
        _append_sidx(child.parsed)
    return parsed
