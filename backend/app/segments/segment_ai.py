from flask import Blueprint, current_app, jsonify, request

from app.extensions import db
from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.media.base import ALLOWED_IMAGE_TYPES, MAX_UPLOAD_BYTES
from app.integrations.media.factory import build_media_provider
from app.models import CATEGORIES, CONDITIONS, Listing
from app.services.ai.category_cache import cache_suggestion, get_cache_metrics, get_cached_suggestion
from app.services.ai.category_suggester import IMAGE_TOKENS_LOW_DETAIL, RESPONSE_TOKENS, suggest_categories
from app.services.ai.description_generator import generate_product_description
from app.services.ai.description_templates import DESCRIPTION_STYLES
from app.services.ai.errors import AIError, http_status_for, user_friendly_message
from app.services.ai.image_enhancer import (
    ImageEnhancementError,
    enhance_product_image,
    get_portrait_url,
    get_square_url,
    get_thumbnail_url,
    is_cloudinary_url,
)
from app.services.ai.rate_limiter import (
    ai_rate_limited,
    category_suggestion_limiter,
    description_generation_limiter,
    image_enhancement_limiter,
)
from app.utils.auth_guard import current_user, login_required
from app.utils.validation import is_valid_url


ai_bp = Blueprint("ai_bp", __name__, url_prefix="/api")

PROMPT_VERSIONS = ("v1", "v2", "v3")
PROMPT_TOKENS = {"v1": 450, "v2": 650, "v3": 250}
ANALYZED_IMAGES = 2
MAX_REQUEST_IMAGES = 5
MAX_CONTEXT_CHARS = 500


def _fail(message: str, code: str, status: int):
    return jsonify({"success": False, "error": message, "code": code}), status


def _ai_error_response(error: AIError):
    return _fail(user_friendly_message(error), error.code, http_status_for(error.code))


def _image_urls(body: dict) -> tuple[list[str] | None, str | None]:
    urls = body.get("imageUrls")
    if not isinstance(urls, list) or not urls:
        return None, "At least one image is required"
    if len(urls) > MAX_REQUEST_IMAGES:
        return None, f"Maximum {MAX_REQUEST_IMAGES} images allowed"
    if not all(isinstance(u, str) and is_valid_url(u) for u in urls):
        return None, "Invalid image URL"
    return [u.strip() for u in urls], None


@ai_bp.post("/suggest-categories")
@ai_rate_limited(category_suggestion_limiter)
def suggest_categories_route():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _fail("Invalid JSON in request body", "INVALID_JSON", 400)

    urls, error = _image_urls(body)
    if error:
        return _fail(error, "VALIDATION_ERROR", 400)
    context = body.get("context")
    if context is not None and (not isinstance(context, str) or len(context) > MAX_CONTEXT_CHARS):
        return _fail(f"Context must be less than {MAX_CONTEXT_CHARS} characters", "VALIDATION_ERROR", 400)
    version = body.get("promptVersion") or "v1"
    if version not in PROMPT_VERSIONS:
        return _fail("promptVersion must be one of v1, v2, v3", "VALIDATION_ERROR", 400)

    images = urls[:ANALYZED_IMAGES]
    try:
        cached = get_cached_suggestion(urls[0])
        if cached is not None:
            return jsonify({"success": True, **cached, "tokensUsed": cached.get("tokensUsed") or 0, "cached": True}), 200
        result = suggest_categories(images, prompt_version=version, context=context or None)
    except AIError as e:
        return _ai_error_response(e)
    except Exception:
        current_app.logger.exception("ai_category_suggestion_route_failed")
        return _fail("An unexpected error occurred. Please try again.", "INTERNAL_ERROR", 500)

    tokens_used = len(images) * IMAGE_TOKENS_LOW_DETAIL + PROMPT_TOKENS[version] + RESPONSE_TOKENS
    payload = {
        "suggestions": result.get("suggestions") or [],
        "createNew": bool(result.get("createNew")),
        "grouping": result.get("grouping") or "General",
        "qualityIssues": result.get("qualityIssues"),
        "tokensUsed": tokens_used,
    }
    cache_suggestion(urls[0], payload)
    return jsonify({"success": True, **payload, "cached": False}), 200


@ai_bp.get("/suggest-categories")
def suggest_categories_metrics():
    return jsonify({"success": True, "metrics": get_cache_metrics()}), 200


@ai_bp.post("/generate-description")
@ai_rate_limited(description_generation_limiter)
def generate_description_route():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _fail("Invalid JSON in request body", "INVALID_JSON", 400)

    urls, error = _image_urls(body)
    if error:
        return _fail(error, "VALIDATION_ERROR", 400)
    category = str(body.get("category") or "").strip().upper()
    if category not in CATEGORIES:
        return _fail("Invalid category", "VALIDATION_ERROR", 400)
    condition = str(body.get("condition") or "GOOD").strip().upper()
    if condition not in CONDITIONS:
        return _fail("Invalid condition", "VALIDATION_ERROR", 400)
    template = str(body.get("templateType") or "detailed").strip().lower()
    if template not in DESCRIPTION_STYLES:
        return _fail("templateType must be one of detailed, concise, seo", "VALIDATION_ERROR", 400)
    title = str(body.get("additionalContext") or "").strip() or None

    try:
        result = generate_product_description(urls[0], category, condition, title=title, template=template)
    except AIError as e:
        current_app.logger.warning("ai_description_failed code=%s message=%s", e.code, e.message)
        return _ai_error_response(e)
    except Exception:
        current_app.logger.exception("ai_description_route_failed")
        return _fail("An unexpected error occurred. Please try again.", "INTERNAL_ERROR", 500)

    return jsonify(
        {
            "success": True,
            "description": result["description"],
            "suggestedTitle": result["suggested_title"],
            "wordCount": result["word_count"],
            "characterCount": result["character_count"],
            "attributes": result["attributes"],
        }
    ), 200


def _record_enhancement(listing: Listing, original_url: str, enhanced_url: str) -> None:
    images = listing.images
    if original_url in images:
        listing.images = [enhanced_url if u == original_url else u for u in images]
        if listing.primary_image == original_url:
            listing.primary_image = enhanced_url
    enhanced = listing.ai_enhanced_images
    if enhanced_url not in enhanced:
        listing.ai_enhanced_images = enhanced + [enhanced_url]
    originals = listing.original_images
    if original_url not in originals:
        listing.original_images = originals + [original_url]


@ai_bp.post("/enhance-image")
@ai_rate_limited(image_enhancement_limiter)
def enhance_image_route():
    body = request.get_json(silent=True) or {}
    image_url = body.get("imageUrl")
    if not isinstance(image_url, str) or not image_url.strip():
        return _fail("Image URL is required", "VALIDATION_ERROR", 400)
    image_url = image_url.strip()
    if not is_valid_url(image_url):
        return _fail("Image URL must be a valid URL", "VALIDATION_ERROR", 400)
    if not is_cloudinary_url(image_url):
        return _fail("Image URL must be from Cloudinary domain (res.cloudinary.com)", "VALIDATION_ERROR", 400)

    listing = None
    listing_id = body.get("listingId")
    if listing_id not in (None, ""):
        user = current_user()
        if user is None:
            return _fail("Authentication required", "UNAUTHORIZED", 401)
        try:
            listing = db.session.get(Listing, int(listing_id))
        except (TypeError, ValueError):
            return _fail("listingId must be an integer", "VALIDATION_ERROR", 400)
        if listing is None:
            return _fail("Listing not found", "NOT_FOUND", 404)
        if int(listing.seller_id) != int(user.id) and not user.is_admin:
            return _fail("Forbidden", "FORBIDDEN", 403)

    try:
        result = enhance_product_image(image_url)
    except ImageEnhancementError as e:
        status = 400 if e.code in ("INVALID_URL", "NOT_CLOUDINARY") else 500
        return _fail(e.message, e.code, status)

    if listing is not None:
        try:
            _record_enhancement(listing, result["original_url"], result["enhanced_url"])
            db.session.commit()
        except Exception:
            db.session.rollback()
            current_app.logger.exception("ai_enhancement_record_failed listing_id=%s", listing_id)
            return _fail("Failed to enhance image", "ENHANCEMENT_FAILED", 500)

    return jsonify(
        {
            "success": True,
            "originalUrl": result["original_url"],
            "enhancedUrl": result["enhanced_url"],
            "width": result["width"],
            "height": result["height"],
            "format": result["format"],
        }
    ), 200


def _upload_size(file) -> int:
    stream = file.stream
    position = stream.tell()
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(position)
    return size


@ai_bp.post("/upload")
@login_required
def upload_image():
    file = request.files.get("file")
    if file is None or not file.filename:
        return jsonify({"ok": False, "error": "No file provided"}), 400
    if (file.mimetype or "").lower() not in ALLOWED_IMAGE_TYPES:
        return jsonify({"ok": False, "error": "Invalid file type. Only JPEG, PNG, and WebP are allowed."}), 400
    if _upload_size(file) > MAX_UPLOAD_BYTES:
        return jsonify({"ok": False, "error": "File too large. Maximum size is 5MB."}), 400

    try:
        provider = build_media_provider(current_app.config)
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        current_app.logger.error("upload_provider_unavailable: %s", e)
        return jsonify({"ok": False, "error": "Image uploads are not configured"}), 503

    result = provider.upload(file, folder=request.form.get("folder") or "listings")
    if not result.ok:
        current_app.logger.error("upload_failed code=%s message=%s", result.code, result.message)
        return jsonify({"ok": False, "error": "Failed to upload image"}), 500

    return jsonify(
        {
            "ok": True,
            "url": result.url,
            "squareUrl": get_square_url(result.url),
            "portraitUrl": get_portrait_url(result.url),
            "thumbnailUrl": get_thumbnail_url(result.url),
            "publicId": result.public_id,
            "width": result.width,
            "height": result.height,
        }
    ), 200
