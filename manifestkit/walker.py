"""
Manifest graph walker for ManifestKit.

Recursively fetches a master playlist (HLS or DASH) and everything it
references, assigns every resource its local destination, and rewrites each
manifest body so that all references point at those local files.

Layout of the mirrored tree:
- ``<output>/master.m3u8`` for the root manifest
- ``<parent dir>/manifest<N>/<name>`` for the N-th child playlist of a parent
- segments and init maps beside their owning manifest
- ``<parent dir>/manifest<N>/`` for the segments of the N-th DASH representation
- keys beside the parent manifest (or beside the root manifest)
"""

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .client import HTTPClient
from .exceptions import KeyFetchError, annotate_error, is_annotated
from .formats import parse_manifest
from .models import Key, Manifest, PlaylistRef, Resource, Segment, SegmentRef
from .utils import (
    derive_iv,
    fs_sanitize,
    relative_reference,
    remove_reference_line,
    replace_reference,
    resolve_uri,
    strip_query,
    url_basename,
)

logger = logging.getLogger(__name__)

ROOT_MANIFEST_NAME = "master.m3u8"
DEFAULT_WALK_CONCURRENCY = 8
KEY_LENGTH = 16
DECRYPTABLE_METHOD = "AES-128"


class ManifestWalker:
    """
    Walks one manifest graph.

    A walker owns the visited-URI ledger of a single top-level walk, so
    separate walkers can run concurrently in the same process.

    A manifest body is only ever rewritten by the walk step that owns it:
    key and segment references while the manifest is resolved, child
    references while its children are claimed, which happens sequentially
    before the children are fetched concurrently.
    """

    def __init__(
        self,
        basedir: str,
        decrypt: bool = False,
        client: Optional[HTTPClient] = None,
        concurrency: int = DEFAULT_WALK_CONCURRENCY,
    ):
        """
        Initialize manifest walker.

        Args:
            basedir: Output directory the mirrored tree is laid out in
            decrypt: Fetch key material and strip key lines instead of mirroring key files
            client: HTTP client for manifests and keys (default: HTTPClient())
            concurrency: Maximum child playlists walked concurrently per manifest
        """
        self.basedir = basedir
        self.decrypt = decrypt
        self.client = client or HTTPClient()
        self.concurrency = max(1, concurrency)
        self._visited: Dict[str, Manifest] = {}
        self._visited_lock = threading.Lock()

    def walk(self, uri: str) -> List[Resource]:
        """
        Walk the manifest graph rooted at ``uri``.

        Args:
            uri: Absolute URI of the master playlist

        Returns:
            Ordered list of resources: each manifest, then its key, then its
            segments, then the full expansion of each child playlist.

        Raises:
            MirrorError: Annotated with the URI of the deepest failing manifest
        """
        root = Manifest(uri=uri, file=os.path.join(self.basedir, ROOT_MANIFEST_NAME))
        self._register(root)
        return self._walk(root)

    def _register(self, manifest: Manifest) -> Optional[Manifest]:
        """
        Record a manifest in the visited ledger.

        Returns the manifest already registered under the same URI, or None
        if this one was registered.
        """
        ledger_key = strip_query(manifest.uri)
        with self._visited_lock:
            existing = self._visited.get(ledger_key)
            if existing is None:
                self._visited[ledger_key] = manifest
        return existing

    def _walk(self, manifest: Manifest) -> List[Resource]:
        try:
            return self._resolve(manifest)
        except Exception as err:
            if is_annotated(err):
                raise
            raise annotate_error(err, manifest.uri) from err

    def _resolve(self, manifest: Manifest) -> List[Resource]:
        resources: List[Resource] = []

        if not manifest.is_dash_playlist:
            logger.debug(f"Fetching manifest: {manifest.uri}")
            content, content_type = self.client.get_text(manifest.uri, timeout=self.client.timeout)
            manifest.content = content
            manifest.parsed = parse_manifest(content, content_type, manifest.uri)
            resources.append(manifest)

        parsed = manifest.parsed
        segments = list(parsed.segments)

        # Shared init maps are mirrored once per manifest
        init_uris = set()
        for segment in parsed.segments:
            init_map = segment.map
            if init_map is not None and init_map.uri and init_map.uri not in init_uris:
                init_uris.add(init_map.uri)
                segments.append(init_map)

        key = self._resolve_key(manifest, resources)

        for index, ref in enumerate(segments):
            if ref.uri:
                resources.append(self._resolve_segment(manifest, ref, index, key))

        children = []
        for index, ref in enumerate(parsed.children()):
            child = self._claim_child(manifest, ref, index)
            if child is not None:
                children.append(child)

        resources.extend(self._walk_children(children))
        return resources

    def _resolve_key(self, manifest: Manifest, resources: List[Resource]) -> Optional[Key]:
        """
        Resolve the key of a manifest from its first segment.

        Without decryption the key is mirrored as a file and its reference is
        rewritten. With decryption its bytes are fetched and the key line is
        removed from the manifest body. Keys of any method other than
        AES-128 (e.g. SAMPLE-AES) cannot be applied to whole segments and are
        always mirrored as files.
        """
        segments = manifest.parsed.segments
        if not segments or segments[0].key is None:
            return None

        ref = segments[0].key
        uri = resolve_uri(manifest.uri, ref.uri)

        decrypt = self.decrypt
        if decrypt and (ref.method or "").upper() != DECRYPTABLE_METHOD:
            logger.warning(f"Cannot decrypt {ref.method} segments, mirroring key as is: {uri}")
            decrypt = False

        if not decrypt:
            key_dir = os.path.dirname(manifest.parent.file if manifest.parent else manifest.file)
            key = Key(
                uri=uri,
                file=os.path.join(key_dir, url_basename(ref.uri)),
                method=ref.method,
                iv=ref.iv,
            )
            manifest.content = replace_reference(
                manifest.content, ref.uri, relative_reference(manifest.file, key.file)
            )
            resources.append(key)
            return key

        try:
            key_bytes = self.client.get_bytes(uri, timeout=self.client.timeout)
        except Exception as err:
            logger.error(f"Failed to fetch key {uri}: {err}")
            raise KeyFetchError(f"Key fetch failed: {err}|{uri}") from err

        if len(key_bytes) != KEY_LENGTH:
            logger.error(f"Key {uri} is {len(key_bytes)} bytes, expected {KEY_LENGTH}")
            raise KeyFetchError(f"Invalid key length {len(key_bytes)}|{uri}")

        manifest.content = remove_reference_line(manifest.content, ref.uri)
        return Key(uri=uri, method=ref.method, iv=ref.iv, material=key_bytes)

    def _resolve_segment(self, manifest: Manifest, ref: SegmentRef, index: int, key: Optional[Key]) -> Segment:
        file = os.path.join(os.path.dirname(manifest.file), url_basename(ref.uri))
        manifest.content = replace_reference(manifest.content, ref.uri, relative_reference(manifest.file, file))

        segment = Segment(
            uri=resolve_uri(manifest.uri, ref.uri),
            file=file,
            byterange=ref.byterange,
        )
        if key is not None:
            segment.key = key
            segment.iv = key.iv or derive_iv(manifest.parsed.media_sequence, index)
        return segment

    def _claim_child(self, parent: Manifest, ref: PlaylistRef, index: int) -> Optional[Manifest]:
        """
        Assign a child playlist its destination and register it.

        The child reference in the parent body is rewritten here. A child
        whose URI was already visited is rewritten to the existing file and
        not walked again.
        """
        if parent.parsed.is_dash and ref.parsed is not None:
            # No body of its own; the file only anchors the rendition's segments
            rendition_id = fs_sanitize(str((ref.parsed.dash_attributes or {}).get("id") or ""))
            return Manifest(
                uri=parent.uri,
                file=os.path.join(
                    os.path.dirname(parent.file),
                    f"manifest{index}",
                    f"{rendition_id or 'rendition'}.mpd",
                ),
                parent=parent,
                parsed=ref.parsed,
                index=index,
                is_dash_playlist=True,
            )

        if not ref.uri:
            return None

        file = os.path.join(os.path.dirname(parent.file), f"manifest{index}", url_basename(ref.uri))
        child = Manifest(
            uri=resolve_uri(parent.uri, ref.uri),
            file=file,
            parent=parent,
            index=index,
        )

        existing = self._register(child)
        target = existing.file if existing is not None else child.file
        parent.content = replace_reference(parent.content, ref.uri, relative_reference(parent.file, target))

        if existing is not None:
            logger.warning(f"Trying to visit the same uri again; skipping to avoid getting stuck in a cycle: {child.uri}")
            return None
        return child

    def _walk_children(self, children: List[Manifest]) -> List[Resource]:
        if not children:
            return []
        if len(children) == 1:
            return self._walk(children[0])

        resources: List[Resource] = []
        with ThreadPoolExecutor(max_workers=min(self.concurrency, len(children))) as executor:
            futures = [executor.submit(self._walk, child) for child in children]
            try:
                for future in futures:
                    resources.extend(future.result())
            except Exception:
                for future in futures:
                    future.cancel()
                raise
        return resources


def walk_manifest(
    uri: str,
    basedir: str,
    decrypt: bool = False,
    client: Optional[HTTPClient] = None,
    concurrency: int = DEFAULT_WALK_CONCURRENCY,
) -> List[Resource]:
    """
    Resolve every resource reachable from a master playlist.

    Args:
        uri: Absolute URI of the master playlist (HLS or DASH)
        basedir: Output directory
        decrypt: Fetch key bytes for decryption instead of mirroring key files
        client: HTTP client (default: HTTPClient())
        concurrency: Maximum child playlists walked concurrently per manifest

    Returns:
        Ordered list of Manifest, Key and Segment records

    Example:
        >>> resources = walk_manifest("https://example.com/master.m3u8", "out")
        >>> print(resources[0].file)
        out/master.m3u8
    """
    owned = client is None
    client = client or HTTPClient()
    try:
        walker = ManifestWalker(basedir, decrypt=decrypt, client=client, concurrency=concurrency)
        return walker.walk(uri)
    finally:
        if owned:
            client.close()
