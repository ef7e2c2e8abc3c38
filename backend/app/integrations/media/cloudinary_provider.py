from __future__ import annotations

import os

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from app.integrations.media.base import MediaProvider, UploadResult, upload_folder


UPLOAD_TRANSFORMATION = [
    {"width": 1200, "height": 1200, "crop": "limit"},
    {"quality": "auto:good"},
    {"fetch_format": "auto"},
]


class CloudinaryMediaProvider(MediaProvider):
    name = "cloudinary"

    def __init__(self, *, cloud_name: str, api_key: str, api_secret: str):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def upload(self, file, *, folder: str = "listings") -> UploadResult:
        try:
            result = cloudinary.uploader.upload(
                file,
                folder=upload_folder(folder),
                resource_type="image",
                transformation=UPLOAD_TRANSFORMATION,
            )
        except CloudinaryError as e:
            return UploadResult(ok=False, code="CLOUDINARY_UPLOAD_FAILED", message=str(e)[:200])
        url = str(result.get("secure_url") or "")
        if not url:
            return UploadResult(ok=False, code="CLOUDINARY_UPLOAD_FAILED", message="missing secure_url")
        return UploadResult(
            ok=True,
            url=url,
            public_id=str(result.get("public_id") or ""),
            width=result.get("width"),
            height=result.get("height"),
            code="OK",
        )


def cloudinary_health() -> dict:
    missing = []
    for key in ("CLOUDINARY_CLOUD_NAME", "CLOUDINARY_API_KEY", "CLOUDINARY_API_SECRET"):
        if not (os.getenv(key) or "").strip():
            missing.append(key)
    return {"missing": missing}
