import os

import pytest
import requests
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

from manifestkit.exceptions import DecryptionError
from manifestkit.models import Key, Manifest, Segment
from manifestkit.writer import decrypt_segment, rename_root_manifest, write_data, write_file

from conftest import FakeClient

KEY = bytes(range(16))
IV = bytes(15) + b"\x01"


def encrypt(plaintext, key=KEY, iv=IV):
    return AES.new(key, AES.MODE_CBC, iv=iv).encrypt(pad(plaintext, AES.block_size))


def read(path):
    with open(path, "rb") as f:
        return f.read()


def test_write_file_creates_directories(tmp_path):
    path = tmp_path / "a" / "b" / "c.ts"
    write_file(str(path), b"data")
    assert path.read_bytes() == b"data"


def test_write_data_writes_manifests_and_segments(tmp_path):
    root = Manifest(uri="https://x/master.m3u8", file=str(tmp_path / "master.m3u8"), content="#EXTM3U\nseg.ts\n")
    segment = Segment(uri="https://x/seg.ts", file=str(tmp_path / "seg.ts"))
    client = FakeClient({"https://x/seg.ts": b"segment"})

    write_data(False, 2, [root, segment], client=client)

    assert read(root.file) == b"#EXTM3U\nseg.ts\n"
    assert read(segment.file) == b"segment"
    # Manifests are written from memory
    assert client.count("https://x/master.m3u8") == 0


def test_write_data_fetches_shared_uri_once(tmp_path):
    first = Segment(uri="https://x/init.mp4", file=str(tmp_path / "manifest0" / "init.mp4"))
    second = Segment(uri="https://x/init.mp4", file=str(tmp_path / "manifest1" / "init.mp4"))
    client = FakeClient({"https://x/init.mp4": b"init"})

    write_data(False, 4, [first, second], client=client)

    assert client.count("https://x/init.mp4") == 1


def test_write_data_respects_concurrency(tmp_path):
    routes = {f"https://x/seg{i}.ts": b"x" for i in range(24)}
    segments = [Segment(uri=uri, file=str(tmp_path / f"seg{i}.ts")) for i, uri in enumerate(routes)]
    client = FakeClient(routes, delay=0.01)

    write_data(False, 3, segments, client=client)

    assert 1 <= client.max_active <= 3
    assert len(client.calls) == 24


def test_write_data_decrypts_segments(tmp_path):
    key = Key(uri="https://x/k.key", material=KEY)
    segment = Segment(uri="https://x/seg.ts", file=str(tmp_path / "seg.ts"), key=key, iv=IV)
    client = FakeClient({"https://x/seg.ts": encrypt(b"plain media bytes")})

    write_data(True, 2, [segment], client=client)

    assert read(segment.file) == b"plain media bytes"


def test_write_data_keeps_ciphertext_without_decrypt(tmp_path):
    key = Key(uri="https://x/k.key", file=str(tmp_path / "k.key"))
    segment = Segment(uri="https://x/seg.ts", file=str(tmp_path / "seg.ts"), key=key, iv=IV)
    ciphertext = encrypt(b"plain")
    client = FakeClient({"https://x/seg.ts": ciphertext, "https://x/k.key": KEY})

    write_data(False, 2, [key, segment], client=client)

    assert read(segment.file) == ciphertext
    assert read(key.file) == KEY


def test_write_data_aborts_on_first_failure(tmp_path):
    segments = [
        Segment(uri="https://x/ok.ts", file=str(tmp_path / "ok.ts")),
        Segment(uri="https://x/missing.ts", file=str(tmp_path / "missing.ts")),
    ]
    client = FakeClient({"https://x/ok.ts": b"ok"})

    with pytest.raises(requests.HTTPError):
        write_data(False, 1, segments, client=client)

    assert not os.path.exists(segments[1].file)


def test_write_data_decryption_failure_propagates(tmp_path):
    key = Key(uri="https://x/k.key", material=KEY)
    segment = Segment(uri="https://x/seg.ts", file=str(tmp_path / "seg.ts"), key=key, iv=IV)
    client = FakeClient({"https://x/seg.ts": b"not a block multiple"})

    with pytest.raises(DecryptionError):
        write_data(True, 1, [segment], client=client)


def test_write_data_reports_progress(tmp_path):
    routes = {f"https://x/seg{i}.ts": b"x" for i in range(5)}
    segments = [Segment(uri=uri, file=str(tmp_path / f"seg{i}.ts")) for i, uri in enumerate(routes)]
    reports = []

    write_data(False, 2, segments, client=FakeClient(routes), on_progress=lambda done, total: reports.append((done, total)))

    assert reports[-1] == (5, 5)


def test_decrypt_segment_roundtrip():
    assert decrypt_segment(encrypt(b"hello"), KEY, IV) == b"hello"


def test_decrypt_segment_rejects_bad_key():
    with pytest.raises(DecryptionError):
        decrypt_segment(encrypt(b"hello"), b"short", IV)


def test_rename_root_manifest(tmp_path):
    root_file = tmp_path / "index.m3u8"
    root_file.write_text("#EXTM3U\n")
    segment_file = tmp_path / "seg.ts"
    segment_file.write_bytes(b"x")
    root = Manifest(uri="https://x/index.m3u8", file=str(root_file))
    segment = Segment(uri="https://x/seg.ts", file=str(segment_file))

    new_path = rename_root_manifest([segment, root])

    assert new_path == str(tmp_path / "master.m3u8")
    assert root.file == new_path
    assert (tmp_path / "master.m3u8").read_text() == "#EXTM3U\n"
    assert segment_file.exists()


def test_rename_root_manifest_skips_master_and_children(tmp_path):
    root = Manifest(uri="https://x/m.m3u8", file=str(tmp_path / "master.m3u8"))
    child_file = tmp_path / "manifest0" / "index.m3u8"
    child_file.parent.mkdir()
    child_file.write_text("#EXTM3U\n")
    child = Manifest(uri="https://x/index.m3u8", file=str(child_file), parent=root)

    assert rename_root_manifest([root, child]) is None
    assert child_file.exists()
