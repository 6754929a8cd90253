import errno
import os

import pytest

from app.errors import SlipTooLargeError, UnsupportedSlipTypeError
from app.slips import SlipStore

from conftest import PNG_BYTES, make_upload


@pytest.fixture
def slip_store(tmp_path):
    return SlipStore(tmp_path / "uploads", "/uploads", max_bytes=1024)


class TestCheck:
    @pytest.mark.parametrize("filename", ["a.jpg", "a.JPEG", "a.png", "a.webp", "a.avif"])
    def test_allowed_extensions(self, slip_store, filename):
        assert slip_store.check(filename, "image/jpeg") == os.path.splitext(filename)[1].lower()

    def test_non_image_mime(self, slip_store):
        with pytest.raises(UnsupportedSlipTypeError):
            slip_store.check("slip.png", "application/pdf")

    @pytest.mark.parametrize("filename", ["slip.gif", "slip.exe", "slip", None])
    def test_disallowed_extensions(self, slip_store, filename):
        with pytest.raises(UnsupportedSlipTypeError):
            slip_store.check(filename, "image/png")

    def test_missing_mime_is_judged_by_extension(self, slip_store):
        assert slip_store.check("slip.webp", None) == ".webp"


class TestStoreSlip:
    async def test_stage_and_persist(self, slip_store):
        staged = await slip_store.stage(make_upload("My Slip.PNG"))
        public_path = await slip_store.persist(staged)

        name = public_path.rsplit("/", 1)[1]
        assert public_path.startswith("/uploads/slips/")
        assert name.endswith(".png")
        assert " " not in name
        assert (slip_store.directory / name).read_bytes() == PNG_BYTES
        assert not staged.path.exists()

    async def test_names_do_not_collide(self, slip_store):
        paths = set()
        for _ in range(5):
            staged = await slip_store.stage(make_upload())
            paths.add(await slip_store.persist(staged))
        assert len(paths) == 5

    async def test_too_large(self, slip_store):
        with pytest.raises(SlipTooLargeError):
            await slip_store.stage(make_upload(data=b"x" * 2048))
        assert not slip_store.directory.exists()

    async def test_empty_file(self, slip_store):
        with pytest.raises(UnsupportedSlipTypeError):
            await slip_store.stage(make_upload(data=b""))

    async def test_cross_device_move_falls_back_to_copy(self, slip_store, monkeypatch):
        calls = []

        def cross_device_rename(src, dest):
            calls.append((src, dest))
            raise OSError(errno.EXDEV, "Invalid cross-device link")

        monkeypatch.setattr(os, "rename", cross_device_rename)

        staged = await slip_store.stage(make_upload())
        public_path = await slip_store.persist(staged)

        assert len(calls) == 1
        assert (slip_store.directory / public_path.rsplit("/", 1)[1]).read_bytes() == PNG_BYTES
        assert not staged.path.exists()

    async def test_other_move_errors_propagate(self, slip_store, monkeypatch):
        def denied(src, dest):
            raise PermissionError(errno.EACCES, "Permission denied")

        monkeypatch.setattr(os, "rename", denied)

        staged = await slip_store.stage(make_upload())
        try:
            with pytest.raises(PermissionError):
                await slip_store.persist(staged)
        finally:
            slip_store.release(staged)
        assert not staged.path.exists()


class TestDiscard:
    async def test_removes_stored_file(self, slip_store):
        public_path = await slip_store.persist(await slip_store.stage(make_upload()))

        slip_store.discard(public_path)

        assert list(slip_store.directory.iterdir()) == []

    async def test_ignores_foreign_paths(self, slip_store, tmp_path):
        outside = tmp_path / "keep.png"
        outside.write_bytes(PNG_BYTES)

        slip_store.discard(str(outside))
        slip_store.discard("https://cdn.example.com/slip.png")

        assert outside.exists()
