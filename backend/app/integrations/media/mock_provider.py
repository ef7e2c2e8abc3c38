from __future__ import annotations

import hashlib
import os

from app.integrations.media.base import MediaProvider, UploadResult, upload_folder


class MockMediaProvider(MediaProvider):
    name = "mock"

    def upload(self, file, *, folder: str = "listings") -> UploadResult:
        if (os.getenv("MOCK_MEDIA_FORCE_FAIL") or "").strip() == "1":
            return UploadResult(ok=False, code="CLOUDINARY_UPLOAD_FAILED", message="mock forced failure")
        filename = getattr(file, "filename", "") or "upload"
        digest = hashlib.sha1(filename.encode("utf-8")).hexdigest()[:12]
        public_id = f"{upload_folder(folder)}/{digest}"
        return UploadResult(
            ok=True,
            url=f"https://res.cloudinary.com/demo/image/upload/v1/{public_id}.jpg",
            public_id=public_id,
            width=1200,
            height=1200,
            code="OK",
        )
