"""
Screenshot storage for trades and journal days.

Files go under ``<screenshot_dir>/<user_id>/...``; the store keeps one
metadata row per file. A batch upload checks each file on its own: bad
files are reported by name after the batch, good files are kept. A missing
storage directory stops the whole batch.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from tradelog.journal.journal_models import JournalScreenshot, ScreenshotType, TradeScreenshot
from tradelog.journal.journal_store import JournalStore
from tradelog.utils.config import get_settings
from tradelog.utils.exceptions import NotFoundError, StorageError, ValidationError
from tradelog.utils.logger import get_logger

logger = get_logger(__name__)

MB = 1024 * 1024


@dataclass
class ScreenshotUpload:
    file_name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        ext = os.path.splitext(self.file_name)[1].lower().lstrip(".")
        return ext or (self.content_type.split("/")[-1] if "/" in self.content_type else "png")


@dataclass
class UploadResult:
    saved: list = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "uploaded": len(self.saved),
            "failed": len(self.errors),
            "errors": list(self.errors),
            "screenshots": [s.to_dict() for s in self.saved],
        }


def check_upload(upload: ScreenshotUpload, max_mb: float) -> None:
    if not (upload.content_type or "").startswith("image/"):
        raise ValidationError("Only image files are allowed", field="content_type")
    if upload.size > max_mb * MB:
        raise ValidationError(f"File exceeds {max_mb:g}MB limit", field="file_size")
    if upload.size == 0:
        raise ValidationError("File is empty", field="file_size")


class ScreenshotManager:
    def __init__(self, store: JournalStore, base_dir: Optional[str] = None) -> None:
        self._store = store
        self._base_dir = base_dir or get_settings().screenshot_dir

    def _require_storage(self) -> None:
        if not os.path.isdir(self._base_dir):
            logger.error("screenshot_storage_missing", path=self._base_dir)
            raise StorageError(f"Screenshot storage not found: {self._base_dir}")

    def _write_file(self, user_id: str, folder: str, upload: ScreenshotUpload) -> str:
        target_dir = os.path.join(self._base_dir, user_id, folder)
        os.makedirs(target_dir, exist_ok=True)
        path = os.path.join(target_dir, f"{uuid.uuid4().hex}.{upload.extension}")
        with open(path, "wb") as f:
            f.write(upload.data)
        return path

    # ── Trades ───────────────────────────────────────────────

    def upload_trade_screenshots(
        self,
        user_id: str,
        trade_id: str,
        uploads: Sequence[ScreenshotUpload],
        screenshot_type: ScreenshotType = ScreenshotType.OTHER,
    ) -> UploadResult:
        self._require_storage()
        if self._store.get_trade(user_id, trade_id) is None:
            raise NotFoundError(f"Trade {trade_id} not found")

        settings = get_settings()
        existing = len(self._store.list_trade_screenshots(user_id, trade_id))
        result = UploadResult()

        for upload in uploads:
            try:
                if existing + len(result.saved) >= settings.max_screenshots_per_trade:
                    raise ValidationError(
                        f"Trade already has {settings.max_screenshots_per_trade} screenshots")
                check_upload(upload, settings.max_trade_screenshot_mb)
                path = self._write_file(user_id, trade_id, upload)
                shot = TradeScreenshot(
                    user_id=user_id, trade_id=trade_id, file_path=path,
                    file_name=upload.file_name, file_size=upload.size,
                    screenshot_type=screenshot_type,
                )
                result.saved.append(self._store.save_trade_screenshot(shot))
            except (ValidationError, OSError) as e:
                reason = e.message if isinstance(e, ValidationError) else str(e)
                result.errors.append(f"{upload.file_name}: {reason}")
                logger.warning("screenshot_rejected", file=upload.file_name, reason=reason)

        logger.info("trade_screenshots_uploaded", trade_id=trade_id,
                    saved=len(result.saved), failed=len(result.errors))
        return result

    def delete_trade_screenshot(self, user_id: str, screenshot_id: str) -> bool:
        shots = {s.id: s for s in self._store.list_trade_screenshots(user_id)}
        shot = shots.get(screenshot_id)
        if shot is None:
            return False
        if os.path.exists(shot.file_path):
            os.remove(shot.file_path)
        return self._store.delete_trade_screenshot(user_id, screenshot_id)

    # ── Journal ──────────────────────────────────────────────

    def upload_journal_screenshots(
        self,
        user_id: str,
        journal_date: date,
        uploads: Sequence[ScreenshotUpload],
        trade_id: Optional[str] = None,
    ) -> UploadResult:
        self._require_storage()
        settings = get_settings()
        result = UploadResult()

        for upload in uploads:
            try:
                check_upload(upload, settings.max_journal_screenshot_mb)
                path = self._write_file(user_id, f"journal-{journal_date.isoformat()}", upload)
                shot = JournalScreenshot(
                    user_id=user_id, journal_date=journal_date, file_path=path,
                    file_name=upload.file_name, file_size=upload.size, trade_id=trade_id,
                )
                result.saved.append(self._store.save_journal_screenshot(shot))
            except (ValidationError, OSError) as e:
                reason = e.message if isinstance(e, ValidationError) else str(e)
                result.errors.append(f"{upload.file_name}: {reason}")
                logger.warning("screenshot_rejected", file=upload.file_name, reason=reason)

        logger.info("journal_screenshots_uploaded", date=journal_date.isoformat(),
                    saved=len(result.saved), failed=len(result.errors))
        return result
