import os

from manifestkit.utils import (
    derive_iv,
    fs_sanitize,
    is_absolute,
    join_uri,
    parse_iv,
    relative_reference,
    remove_reference_line,
    replace_reference,
    resolve_uri,
    strip_query,
    url_basename,
)


def test_is_absolute():
    assert is_absolute("https://example.com/a.m3u8")
    assert is_absolute("http://example.com")
    assert not is_absolute("low/index.m3u8")
    assert not is_absolute("/root/index.m3u8")


def test_join_uri_uses_parent_directory_and_child_query():
    base = "https://example.com/hls/master.m3u8?token=1"
    assert join_uri(base, "low/index.m3u8") == "https://example.com/hls/low/index.m3u8"
    assert join_uri(base, "low/index.m3u8?sig=2") == "https://example.com/hls/low/index.m3u8?sig=2"
    assert join_uri(base, "../other/x.ts") == "https://example.com/other/x.ts"
    assert join_uri(base, "/abs/x.ts") == "https://example.com/abs/x.ts"


def test_resolve_uri_keeps_absolute():
    uri = "https://other.example.com/seg.ts?sig=1"
    assert resolve_uri("https://example.com/hls/index.m3u8", uri) == uri


def test_strip_query():
    assert strip_query("https://cdn.example.com/seg1.ts?token=abc#frag") == "https://cdn.example.com/seg1.ts"
    assert strip_query("seg1.ts?x=1") == "seg1.ts"


def test_url_basename_ignores_query():
    assert url_basename("https://example.com/hls/low/index.m3u8?token=1") == "index.m3u8"
    assert url_basename("seg%201.ts") == "seg 1.ts"


def test_url_basename_falls_back_for_empty_path():
    assert url_basename("https://example.com/") == "resource"


def test_fs_sanitize_removes_invalid_characters():
    assert fs_sanitize('se<g>:"1|?*.ts') == "seg1.ts"
    assert fs_sanitize("..") == ""


def test_fs_sanitize_caps_length():
    name = "a" * 300 + ".ts"
    assert len(fs_sanitize(name).encode("utf-8")) == 255


def test_relative_reference():
    master = os.path.join("out", "master.m3u8")
    child = os.path.join("out", "manifest0", "index.m3u8")
    key = os.path.join("out", "k.key")
    assert relative_reference(master, child) == "manifest0/index.m3u8"
    assert relative_reference(child, key) == "../k.key"


def test_replace_reference_lines_and_attributes():
    content = (
        '#EXT-X-KEY:METHOD=AES-128,URI="key.key"\n'
        '#EXT-X-MAP:URI="init.mp4"\n'
        "#EXTINF:4,\n"
        "seg.ts\n"
        "#EXTINF:4,\n"
        "other-seg.ts\n"
    )
    content = replace_reference(content, "seg.ts", "local/seg.ts")
    content = replace_reference(content, "init.mp4", "init-local.mp4")
    content = replace_reference(content, "key.key", "../key.key")

    assert "\nlocal/seg.ts\n" in content
    assert "\nother-seg.ts\n" in content
    assert 'URI="init-local.mp4"' in content
    assert 'URI="../key.key"' in content


def test_replace_reference_handles_crlf_and_none():
    assert replace_reference("#EXTM3U\r\nseg.ts\r\n", "seg.ts", "a.ts") == "#EXTM3U\r\na.ts\r\n"
    assert replace_reference(None, "seg.ts", "a.ts") is None


def test_remove_reference_line():
    content = '#EXTM3U\n#EXT-X-KEY:METHOD=AES-128,URI="k.key",IV=0x1\n#EXTINF:4,\nseg.ts\n'
    assert remove_reference_line(content, "k.key") == "#EXTM3U\n#EXTINF:4,\nseg.ts\n"


def test_parse_iv():
    assert parse_iv("0x0000000000000000000000000000000A") == bytes(15) + b"\x0a"
    assert parse_iv("0X1") == bytes(15) + b"\x01"
    assert parse_iv(None) is None


def test_derive_iv_is_big_endian_words():
    iv = derive_iv(7, 2)
    assert len(iv) == 16
    assert iv == bytes(8) + b"\x00\x00\x00\x07" + b"\x00\x00\x00\x02"
