"""Cloudinary transformation URLs for product photos.

Nothing is re-uploaded: enhancement rewrites the delivery URL so Cloudinary
applies background removal and padding on the fly.
"""
from __future__ import annotations

import re
from urllib.parse import urlparse


CLOUDINARY_HOST = "res.cloudinary.com"
ENHANCE_TRANSFORMATION = "e_background_removal,b_white,c_pad,w_1000,h_1000,q_auto:best,f_auto"
SQUARE_TRANSFORMATION = "w_1000,h_1000,c_fill,g_auto,q_auto:good,f_auto"
PORTRAIT_TRANSFORMATION = "w_750,h_1000,c_fill,g_auto,q_auto:good,f_auto"
THUMBNAIL_TRANSFORMATION = "w_400,h_400,c_fill,g_auto,q_auto:good,f_auto"

_UPLOAD_MARKER = "/upload/"
_VERSION_TAIL_RE = re.compile(r"(v\d+/.+)$")
_PUBLIC_ID_RE = re.compile(r"/upload/(?:.*?/)?v\d+/(.+)$")
_UPLOAD_TAIL_RE = re.compile(r"/upload/(.+)$")
_EXTENSION_RE = re.compile(r"\.[^/.]+$")


class ImageEnhancementError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def is_cloudinary_url(url: str) -> bool:
    try:
        host = urlparse(url or "").hostname or ""
    except ValueError:
        return False
    return CLOUDINARY_HOST in host


def _split_upload_path(url: str) -> tuple[str, str, str] | None:
    parsed = urlparse(url)
    index = parsed.path.find(_UPLOAD_MARKER)
    if index == -1:
        return None
    cut = index + len(_UPLOAD_MARKER)
    return f"{parsed.scheme}://{parsed.hostname}", parsed.path[:cut], parsed.path[cut:]


def _with_transformation(url: str, transformation: str) -> str | None:
    parts = _split_upload_path(url)
    if parts is None:
        return None
    origin, before, after = parts
    version = _VERSION_TAIL_RE.search(after)
    tail = version.group(1) if version else after
    return f"{origin}{before}{transformation}/{tail}"


def generate_enhanced_url(original_url: str) -> str:
    if not is_cloudinary_url(original_url):
        raise ValueError("URL must be from Cloudinary domain")
    enhanced = _with_transformation(original_url, ENHANCE_TRANSFORMATION)
    if enhanced is None:
        raise ValueError("Invalid Cloudinary URL format")
    return enhanced


def revert_to_original(enhanced_url: str) -> str:
    if not is_cloudinary_url(enhanced_url):
        raise ValueError("URL must be from Cloudinary domain")
    parts = _split_upload_path(enhanced_url)
    if parts is None:
        raise ValueError("Invalid Cloudinary URL format")
    origin, before, after = parts
    version = _VERSION_TAIL_RE.search(after)
    if not version:
        return enhanced_url
    return f"{origin}{before}{version.group(1)}"


def extract_public_id(url: str) -> str:
    if not is_cloudinary_url(url):
        raise ValueError("URL is not from Cloudinary domain")
    path = urlparse(url).path
    match = _PUBLIC_ID_RE.search(path) or _UPLOAD_TAIL_RE.search(path)
    if not match:
        raise ValueError("Could not extract public ID from Cloudinary URL")
    return _EXTENSION_RE.sub("", match.group(1))


def enhance_product_image(image_url: str) -> dict:
    if not image_url or not isinstance(image_url, str):
        raise ImageEnhancementError("INVALID_URL", "Image URL must be a non-empty string")
    if not is_cloudinary_url(image_url):
        raise ImageEnhancementError(
            "NOT_CLOUDINARY", "Image URL must be from Cloudinary domain (res.cloudinary.com)"
        )
    try:
        enhanced_url = generate_enhanced_url(image_url)
    except ValueError as e:
        raise ImageEnhancementError("ENHANCEMENT_FAILED", str(e) or "Failed to enhance image") from e
    return {
        "original_url": image_url,
        "enhanced_url": enhanced_url,
        "width": 1000,
        "height": 1000,
        "format": "auto",
    }


def _variant(original_url: str, transformation: str) -> str:
    if not is_cloudinary_url(original_url):
        return original_url
    return _with_transformation(original_url, transformation) or original_url


def get_square_url(original_url: str) -> str:
    return _variant(original_url, SQUARE_TRANSFORMATION)


def get_portrait_url(original_url: str) -> str:
    return _variant(original_url, PORTRAIT_TRANSFORMATION)


def get_thumbnail_url(original_url: str) -> str:
    return _variant(original_url, THUMBNAIL_TRANSFORMATION)
