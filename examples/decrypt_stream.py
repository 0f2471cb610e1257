"""
Decrypting mirror example.

Demonstrates walking and writing as two separate phases, with AES-128
segments decrypted on the way to disk and progress reported by callback.
"""

import logging

from manifestkit import walk_manifest, write_data
from manifestkit.models import Segment

# Configure logging to see manifestkit internal logs
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

def main():
    url = "https://example.com/encrypted/master.m3u8"
    output_dir = "/tmp/mirror-decrypted"

    # Phase 1: fetch and rewrite every manifest, collect segments and keys
    resources = walk_manifest(url, output_dir, decrypt=True)
    encrypted = [r for r in resources if isinstance(r, Segment) and r.key is not None]
    print(f"Found {len(resources)} resources, {len(encrypted)} encrypted segments")

    # Phase 2: download, decrypt and write
    def on_progress(completed, total):
        print(f"  {completed}/{total}")

    write_data(True, 8, resources, output_dir, on_progress=on_progress)
    print(f"Done. Play {output_dir}/master.m3u8")

if __name__ == "__main__":
    main()
