"""
Order Service — 振込スリップの保存

アップロードされた画像を一時ファイルに書き出し (stage)、
公開ディレクトリ <upload_root>/slips/ へ移動する (persist)。

移動は os.rename を試し、別ファイルシステム間 (EXDEV) で失敗した場合のみ
コピーしてから元ファイルを削除する。ファイル名は
<エポックミリ秒>-<ランダム文字列><元の拡張子> で、リクエスト間で衝突しない。

ファイルの保存は DB トランザクションとは連動しない。注文の作成に失敗した
場合は discard で後片付けするが、これはベストエフォート。
"""

import errno
import logging
import os
import secrets
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from starlette.concurrency import run_in_threadpool

from .errors import SlipTooLargeError, UnsupportedSlipTypeError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".avif"})

CHUNK_SIZE = 64 * 1024


class Upload(Protocol):
    filename: str | None
    content_type: str | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class StagedSlip:
    path: Path
    extension: str
    size: int


class SlipStore:
    def __init__(
        self,
        root: Path,
        public_prefix: str = "/uploads",
        max_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.directory = Path(root) / "slips"
        self.public_prefix = public_prefix.rstrip("/") + "/slips/"
        self.max_bytes = max_bytes

    def check(self, filename: str | None, content_type: str | None) -> str:
        """MIME タイプと拡張子を検証し、小文字の拡張子を返す。"""
        if content_type and not content_type.lower().startswith("image/"):
            raise UnsupportedSlipTypeError(f"Slip must be an image, got {content_type}")
        extension = Path(filename or "").suffix.lower()
        if extension not in ALLOWED_EXTENSIONS:
            raise UnsupportedSlipTypeError(
                f"Unsupported slip file extension: {extension or '(none)'}"
            )
        return extension

    async def stage(self, upload: Upload) -> StagedSlip:
        extension = self.check(upload.filename, upload.content_type)
        fd, name = tempfile.mkstemp(prefix="slip-", suffix=extension)
        size = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise SlipTooLargeError(
                            f"Slip exceeds the {self.max_bytes // (1024 * 1024)} MB limit"
                        )
                    await run_in_threadpool(out.write, chunk)
        except BaseException:
            Path(name).unlink(missing_ok=True)
            raise
        if size == 0:
            Path(name).unlink(missing_ok=True)
            raise UnsupportedSlipTypeError("Slip file is empty")
        return StagedSlip(Path(name), extension, size)

    async def persist(self, staged: StagedSlip) -> str:
        """一時ファイルを公開ディレクトリへ移動し、公開パスを返す。"""
        filename = f"{int(time.time() * 1000)}-{secrets.token_hex(6)}{staged.extension}"
        await run_in_threadpool(self._move, staged.path, self.directory / filename)
        logger.info("Stored payment slip %s (%d bytes)", filename, staged.size)
        return self.public_prefix + filename

    def _move(self, src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.rename(src, dest)
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise
            shutil.copyfile(src, dest)
            os.unlink(src)

    def discard(self, public_path: str) -> None:
        """保存済みのスリップを消す。キャンセル中でも呼べるよう同期で行う。"""
        if not public_path.startswith(self.public_prefix):
            return
        path = self.directory / public_path[len(self.public_prefix):]
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove slip %s: %s", path, e)

    def release(self, staged: StagedSlip | None) -> None:
        """persist されずに残った一時ファイルを消す。"""
        if staged is not None:
            staged.path.unlink(missing_ok=True)
