import threading
import time

import pytest
import requests


BASE = "https://cdn.example.com/hls"

MASTER = f"""#EXTM3U
#EXT-X-VERSION:4
#EXT-X-MEDIA:TYPE=AUDIO,GROUP-ID="aud",NAME="English",LANGUAGE="en",URI="audio/en.m3u8"
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,AUDIO="aud"
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=1600000,RESOLUTION=1280x720,AUDIO="aud"
{BASE}/high/index.m3u8?token=abc
"""

TWO_RENDITIONS = """#EXTM3U
#EXT-X-STREAM-INF:BANDWIDTH=800000
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=1600000
high/index.m3u8
"""


def media_playlist(names, key_line=None, map_line=None, media_sequence=0):
    lines = [
        "#EXTM3U",
        "#EXT-X-VERSION:3",
        "#EXT-X-TARGETDURATION:4",
        f"#EXT-X-MEDIA-SEQUENCE:{media_sequence}",
    ]
    if key_line:
        lines.append(key_line)
    if map_line:
        lines.append(map_line)
    for name in names:
        lines.append("#EXTINF:4.0,")
        lines.append(name)
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines) + "\n"


class FakeClient:
    """In-memory stand-in for HTTPClient that records every request."""

    def __init__(self, routes, delay=0.0):
        self.routes = dict(routes)
        self.delay = delay
        self.timeout = 15
        self.segment_timeout = 30
        self.calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _lookup(self, uri):
        with self._lock:
            self.calls.append(uri)
        if uri not in self.routes:
            raise requests.HTTPError(f"404 Client Error: Not Found for url: {uri}")
        return self.routes[uri]

    def get_text(self, uri, timeout=None):
        body = self._lookup(uri)
        content_type = "application/vnd.apple.mpegurl"
        if isinstance(body, tuple):
            body, content_type = body
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return body, content_type

    def get_bytes(self, uri, timeout=None):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            body = self._lookup(uri)
            if isinstance(body, tuple):
                body = body[0]
            if isinstance(body, str):
                body = body.encode("utf-8")
            return body
        finally:
            with self._lock:
                self.active -= 1

    def count(self, uri):
        return self.calls.count(uri)


@pytest.fixture
def hls_routes():
    """Master with two variants and one audio rendition, three segments each."""
    return {
        f"{BASE}/master.m3u8": MASTER,
        f"{BASE}/low/index.m3u8": media_playlist(["seg0.ts", "seg1.ts", "seg2.ts"]),
        f"{BASE}/high/index.m3u8?token=abc": media_playlist([
            f"{BASE}/high/seg0.ts?sig=1",
            f"{BASE}/high/seg1.ts?sig=1",
            f"{BASE}/high/seg2.ts?sig=1",
        ]),
        f"{BASE}/audio/en.m3u8": media_playlist(["a0.aac", "a1.aac", "a2.aac"]),
        f"{BASE}/low/seg0.ts": b"low-0",
        f"{BASE}/low/seg1.ts": b"low-1",
        f"{BASE}/low/seg2.ts": b"low-2",
        f"{BASE}/high/seg0.ts?sig=1": b"high-0",
        f"{BASE}/high/seg1.ts?sig=1": b"high-1",
        f"{BASE}/high/seg2.ts?sig=1": b"high-2",
        f"{BASE}/audio/a0.aac": b"audio-0",
        f"{BASE}/audio/a1.aac": b"audio-1",
        f"{BASE}/audio/a2.aac": b"audio-2",
    }


@pytest.fixture
def fake_client(hls_routes):
    return FakeClient(hls_routes)
