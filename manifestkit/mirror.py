"""
Manifest mirroring for ManifestKit.

Runs the two phases of a mirror: the manifest walk, which resolves the whole
resource graph in memory, then the resource writer, which materializes it on
disk. The phases never interleave.
"""

import logging
import os
from typing import List, Optional

from .client import MANIFEST_TIMEOUT, SEGMENT_TIMEOUT, DEFAULT_RETRIES, HTTPClient
from .models import MirrorConfig, Resource
from .walker import DEFAULT_WALK_CONCURRENCY, walk_manifest
from .writer import DEFAULT_CONCURRENCY, write_data

logger = logging.getLogger(__name__)


class ManifestMirror:
    """
    Mirrors an HLS or DASH manifest and everything it references.

    The output directory receives ``master.m3u8`` plus one ``manifest<N>``
    directory per child playlist, with every reference rewritten to a local
    relative path.
    """

    def __init__(
        self,
        manifest_client: Optional[HTTPClient] = None,
        segment_client: Optional[HTTPClient] = None,
        request_timeout: float = MANIFEST_TIMEOUT,
        segment_timeout: float = SEGMENT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        walk_concurrency: int = DEFAULT_WALK_CONCURRENCY,
        verify_ssl: bool = True,
    ):
        """
        Initialize manifest mirror.

        Args:
            manifest_client: Client for manifests and keys (default: exponential backoff)
            segment_client: Client for segments and key files (default: linear backoff)
            request_timeout: Manifest and key timeout in seconds (default: 15)
            segment_timeout: Segment timeout in seconds (default: 30)
            retries: Retry attempts for transient network errors (default: 3)
            walk_concurrency: Maximum child playlists walked concurrently per manifest
            verify_ssl: Whether to verify SSL certificates
        """
        # Only clients created here are closed by close()
        self._owned_clients: List[HTTPClient] = []

        if manifest_client is None:
            manifest_client = HTTPClient(
                timeout=request_timeout,
                segment_timeout=segment_timeout,
                retries=retries,
                verify_ssl=verify_ssl,
            )
            self._owned_clients.append(manifest_client)
        if segment_client is None:
            segment_client = HTTPClient(
                timeout=request_timeout,
                segment_timeout=segment_timeout,
                retries=retries,
                linear_backoff=True,
                verify_ssl=verify_ssl,
            )
            self._owned_clients.append(segment_client)

        self.manifest_client = manifest_client
        self.segment_client = segment_client
        self.walk_concurrency = walk_concurrency

    def close(self) -> None:
        """Close the HTTP sessions this mirror created."""
        for client in self._owned_clients:
            client.close()
        self._owned_clients = []

    def __enter__(self) -> "ManifestMirror":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def mirror(
        self,
        url: str,
        output_dir: str,
        concurrency: int = DEFAULT_CONCURRENCY,
        decrypt: bool = False,
    ) -> List[Resource]:
        """
        Mirror a manifest into ``output_dir``.

        Args:
            url: Absolute URI of the master playlist (.m3u8 or .mpd)
            output_dir: Directory to write the mirrored tree to
            concurrency: Maximum simultaneous segment fetches (default: 10)
            decrypt: Decrypt AES-128 segments and remove key lines (default: False)

        Returns:
            The resource list that was written

        Raises:
            MirrorError: If the walk fails (annotated with the failing URI)
            requests.RequestException, DecryptionError, OSError: If writing fails

        Example:
            >>> mirror = ManifestMirror()
            >>> resources = mirror.mirror("https://example.com/master.m3u8", "out")
            >>> print(len(resources))
            42
        """
        output_dir = os.path.abspath(output_dir)

        logger.info(f"Gathering manifest data from: {url}")
        resources = walk_manifest(
            url,
            output_dir,
            decrypt=decrypt,
            client=self.manifest_client,
            concurrency=self.walk_concurrency,
        )
        logger.info(f"Found {len(resources)} resources to download")

        logger.info(f"Downloading resources to: {output_dir}")
        write_data(decrypt, concurrency, resources, output_dir, client=self.segment_client)
        return resources

    def mirror_from_config(self, config: MirrorConfig) -> List[Resource]:
        """
        Mirror using a MirrorConfig object.

        Args:
            config: MirrorConfig object with mirroring parameters

        Returns:
            The resource list that was written
        """
        return self.mirror(
            url=config.url,
            output_dir=config.output_dir,
            concurrency=config.concurrency,
            decrypt=config.decrypt,
        )


def mirror_manifest(config: MirrorConfig) -> List[Resource]:
    """
    Mirror a manifest with clients built from ``config``.

    Args:
        config: MirrorConfig object with mirroring parameters

    Returns:
        The resource list that was written
    """
    with ManifestMirror(
        request_timeout=config.request_timeout,
        segment_timeout=config.segment_timeout,
        retries=config.retries,
        walk_concurrency=config.walk_concurrency,
        verify_ssl=config.verify_ssl,
    ) as mirror:
        return mirror.mirror_from_config(config)
