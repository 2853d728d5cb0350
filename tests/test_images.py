import base64

import pytest

from images import sniff_extension

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_PAYLOAD = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


@pytest.mark.parametrize(
    "payload, ext",
    [
        ("data:image/jpeg;base64,AAAA", "jpg"),
        ("data:image/png;base64,AAAA", "png"),
        ("data:image/gif;base64,AAAA", "gif"),
        ("data:image/webp;base64,AAAA", "webp"),
        ("data:image/svg+xml;base64,AAAA", "svg"),
        ("data:image/bmp;base64,AAAA", "jpg"),
        ("AAAA", "jpg"),
    ],
)
def test_sniff_extension(payload, ext):
    assert sniff_extension(payload) == ext


def test_save_writes_decoded_file(images):
    path = images.save(PNG_PAYLOAD, "items", "abc")
    assert path == "/uploads/items/abc.png"
    assert (images.upload_dir / "items" / "abc.png").read_bytes() == PNG_BYTES


def test_save_without_prefix_defaults_to_jpg(images):
    raw = base64.b64encode(b"jpeg-ish").decode()
    assert images.save(raw, "users", "u1") == "/uploads/users/u1.jpg"


def test_save_returns_none_for_empty_or_undecodable(images):
    assert images.save("", "items", "x") is None
    assert images.save(None, "items", "x") is None
    assert images.save("data:image/png;base64,", "items", "x") is None
    assert images.save("data:image/png;base64,abcde", "items", "x") is None


def test_save_returns_none_when_folder_cannot_be_written(images):
    images.upload_dir.mkdir(parents=True)
    (images.upload_dir / "items").write_text("a file, not a folder")
    assert images.save(PNG_PAYLOAD, "items", "abc") is None


def test_delete_removes_local_files_only(images):
    path = images.save(PNG_PAYLOAD, "items", "abc")
    assert images.delete(path)
    assert not (images.upload_dir / "items" / "abc.png").exists()
    assert not images.delete(path)
    assert not images.delete("https://via.placeholder.com/150")
    assert not images.delete(None)


def test_delete_refuses_paths_outside_uploads(images, tmp_path):
    secret = tmp_path / "secret.txt"
    secret.write_text("keep me")
    assert not images.delete("/uploads/../secret.txt")
    assert secret.exists()
