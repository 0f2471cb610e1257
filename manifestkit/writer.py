"""
Resource writer for ManifestKit.

Materializes the resource list produced by the walker: manifests are written
from memory, segments and keys are fetched (and optionally decrypted) under a
bounded worker pool, and the root manifest is finally renamed to
``master.m3u8``.
"""

import logging
import os
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from .client import HTTPClient
from .exceptions import DecryptionError
from .models import Key, Manifest, Resource
from .walker import ROOT_MANIFEST_NAME

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 10


def write_file(path: str, content: bytes) -> None:
    """
    Write a full buffer to ``path``, creating missing parent directories.

    Args:
        path: Destination file path
        content: Bytes to write
    """
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)
    logger.debug(f"Wrote {len(content)} bytes to {path}")


def decrypt_segment(content: bytes, key: bytes, iv: bytes) -> bytes:
    """
    Decrypt an AES-128 CBC segment and strip its PKCS#7 padding.

    Args:
        content: Ciphertext
        key: 16-byte key
        iv: 16-byte initialization vector

    Returns:
        Plaintext bytes

    Raises:
        DecryptionError: If the key, IV or ciphertext is malformed
    """
    try:
        cipher = AES.new(key, AES.MODE_CBC, iv=iv)
        return unpad(cipher.decrypt(content), AES.block_size)
    except (ValueError, TypeError) as e:
        raise DecryptionError(f"Segment decryption failed: {str(e)}") from e


def rename_root_manifest(resources: List[Resource]) -> Optional[str]:
    """
    Rename the root manifest file to ``master.m3u8`` if it is named otherwise.

    Only manifests without a parent are candidates, and at most one rename
    is performed.

    Returns:
        The new path, or None if nothing was renamed
    """
    for resource in resources:
        if not isinstance(resource, Manifest) or resource.parent is not None or not resource.file:
            continue
        if os.path.basename(resource.file) == ROOT_MANIFEST_NAME:
            continue

        old_path = resource.file
        new_path = os.path.join(os.path.dirname(old_path), ROOT_MANIFEST_NAME)
        try:
            if os.path.exists(old_path):
                os.replace(old_path, new_path)
                resource.file = new_path
                logger.info(f"Renamed root manifest to: {ROOT_MANIFEST_NAME}")
                return new_path
        except OSError as e:
            logger.warning(f"Could not rename root manifest: {str(e)}")
    return None


class _Progress:
    """Completed-operation counter logging about every 10%."""

    def __init__(self, total: int, callback: Optional[Callable[[int, int], None]] = None):
        self.total = total
        self.completed = 0
        self.interval = max(1, total // 10)
        self.callback = callback
        self._lock = threading.Lock()

    def advance(self) -> None:
        with self._lock:
            self.completed += 1
            completed = self.completed
            if completed % self.interval == 0 or completed == self.total:
                logger.info(f"Progress: {completed}/{self.total} ({round(completed / self.total * 100)}%)")
                if self.callback:
                    self.callback(completed, self.total)


def write_data(
    decrypt: bool,
    concurrency: int,
    resources: List[Resource],
    output_path: Optional[str] = None,
    client: Optional[HTTPClient] = None,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> None:
    """
    Fetch, decrypt and write every resource.

    Each resource maps to at most one operation:
    1. Manifest with content: write the content
    2. Resource with a key while decrypting: fetch, decrypt, write
    3. Resource with a URI not yet scheduled in this call: fetch and write
    4. Anything else: nothing to do

    The first failing operation aborts the remaining ones and is re-raised.

    Args:
        decrypt: Decrypt segments that carry key bytes
        concurrency: Maximum operations in flight
        resources: Resource list from the walker
        output_path: Output directory; when given, the root manifest is renamed afterwards
        client: HTTP client for segments and keys (default: HTTPClient with linear backoff)
        on_progress: Optional callback receiving (completed, total)
    """
    owned = client is None
    client = client or HTTPClient(linear_backoff=True)
    scheduled = set()
    operations: List[Callable[[], None]] = []

    for resource in resources:
        if isinstance(resource, Manifest):
            if resource.content is not None:
                operations.append(lambda r=resource: write_file(r.file, r.content.encode("utf-8")))
            continue

        key = resource.key if not isinstance(resource, Key) else None
        if resource.uri and key is not None and key.material is not None and decrypt:
            def fetch_and_decrypt(r=resource):
                content = client.get_bytes(r.uri)
                write_file(r.file, decrypt_segment(content, r.key.material, r.iv or r.key.iv))
            operations.append(fetch_and_decrypt)
        elif resource.uri and resource.uri not in scheduled:
            scheduled.add(resource.uri)
            operations.append(lambda r=resource: write_file(r.file, client.get_bytes(r.uri)))

    total = len(operations)
    logger.info(f"Starting download of {total} resources with concurrency {concurrency}")
    try:
        if total:
            _run(operations, concurrency, _Progress(total, on_progress))
    finally:
        if owned:
            client.close()

    if output_path:
        rename_root_manifest(resources)

    logger.info(f"Download completed! Successfully processed {total} resources.")


def _run(operations: List[Callable[[], None]], concurrency: int, progress: _Progress) -> None:
    def run(operation):
        operation()
        progress.advance()

    with ThreadPoolExecutor(max_workers=max(1, concurrency)) as executor:
        futures = [executor.submit(run, operation) for operation in operations]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None:
                for other in pending:
                    other.cancel()
                logger.error(f"Download failed with error: {error}")
                raise error
