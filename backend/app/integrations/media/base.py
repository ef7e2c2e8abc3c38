from __future__ import annotations

from dataclasses import dataclass


ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
UPLOAD_FOLDER_ROOT = "second-hand"


@dataclass
class UploadResult:
    ok: bool
    url: str = ""
    public_id: str = ""
    width: int | None = None
    height: int | None = None
    code: str = ""
    message: str = ""


class MediaProvider:
    name = "unknown"

    def upload(self, file, *, folder: str = "listings") -> UploadResult:
        raise NotImplementedError


def upload_folder(folder: str | None) -> str:
    cleaned = "".join(ch for ch in (folder or "listings").strip().lower() if ch.isalnum() or ch in "-_")
    return f"{UPLOAD_FOLDER_ROOT}/{cleaned or 'listings'}"
