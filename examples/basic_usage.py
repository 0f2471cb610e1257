"""
Basic ManifestKit usage example.

Demonstrates mirroring an HLS master playlist into a local directory.
"""

from manifestkit import ManifestMirror
from manifestkit.models import Manifest, Segment

def main():
    # Walk the manifest tree, then download every segment and key
    print("Mirroring HLS stream...")
    with ManifestMirror() as mirror:
        resources = mirror.mirror(
            url="https://example.com/hls/master.m3u8",
            output_dir="/tmp/mirror",
            concurrency=10,
        )

    manifests = [r for r in resources if isinstance(r, Manifest)]
    segments = [r for r in resources if isinstance(r, Segment)]
    print(f"Mirrored {len(manifests)} manifests and {len(segments)} segments")
    print("Root manifest: /tmp/mirror/master.m3u8")

if __name__ == "__main__":
    main()
