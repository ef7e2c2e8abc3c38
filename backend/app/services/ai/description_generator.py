from __future__ import annotations

import re
import time
from urllib.parse import urlparse

from flask import current_app, has_app_context

from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.vision.base import VisionProvider, VisionProviderError
from app.integrations.vision.factory import build_vision_provider
from app.models.listing import CATEGORIES, CONDITIONS
from app.services.ai.description_templates import DESCRIPTION_STYLES, generate_prompt, word_count
from app.services.ai.errors import (
    AIError,
    invalid_image_error,
    no_image_error,
    openai_error,
    rate_limit_error,
    timeout_error,
    validation_error,
)
from app.utils.observability import log_ai_call


DESCRIPTION_MODEL = "gpt-4o"
FALLBACK_MODEL = "gpt-4o-mini"
MAX_DESCRIPTION_CHARS = 2000
MIN_DESCRIPTION_WORDS = 20
REQUEST_TIMEOUT_SECONDS = 30
TOP_P = 0.9

KNOWN_IMAGE_HOSTS = ("cloudinary.com", "unsplash.com", "imgur.com")
_IMAGE_EXT_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
_TITLE_RE = re.compile(r"^TITLE:\s*(.+?)(?:\n\n|\n)")
_TITLE_LINE_RE = re.compile(r"^TITLE:\s*.+?\n\n?")

_COLOR_RE = re.compile(
    r"\b(black|white|grey|gray|blue|red|green|yellow|orange|purple|pink|brown|beige|navy|silver|gold|cream|khaki|maroon)\b",
    re.IGNORECASE,
)
_MATERIAL_RE = re.compile(
    r"\b(cotton|polyester|leather|metal|plastic|wood|glass|ceramic|steel|aluminium|aluminum|fabric|denim|silk|wool|suede|canvas|rubber)\b",
    re.IGNORECASE,
)
_BRAND_RE = re.compile(
    r"\b(Nike|Adidas|Samsung|Apple|Sony|LG|HP|Dell|Lenovo|Asus|Ikea|Zara|H&M|Levi's|Puma|Reebok|Canon|Nikon|Bosch|Philips)\b"
)
_STYLE_RE = re.compile(
    r"\b(modern|vintage|classic|contemporary|traditional|minimalist|rustic|industrial|bohemian|casual|formal|sporty|elegant)\b",
    re.IGNORECASE,
)


def extract_attributes(description: str) -> dict:
    attributes = {}
    match = _COLOR_RE.search(description)
    if match:
        attributes["color"] = match.group(1).lower()
    match = _MATERIAL_RE.search(description)
    if match:
        attributes["material"] = match.group(1).lower()
    match = _BRAND_RE.search(description)
    if match:
        attributes["brand"] = match.group(1)
    match = _STYLE_RE.search(description)
    if match:
        attributes["style"] = match.group(1).lower()
    return attributes


def truncate_description(description: str, max_chars: int = MAX_DESCRIPTION_CHARS) -> str:
    if len(description) <= max_chars:
        return description

    truncated = description[:max_chars]
    sentence_end = max(truncated.rfind("."), truncated.rfind("!"), truncated.rfind("?"))
    if sentence_end > 0 and sentence_end > max_chars * 0.7:
        return truncated[: sentence_end + 1].strip()

    last_space = truncated.rfind(" ")
    if last_space > 0:
        return truncated[:last_space].strip() + "..."
    return truncated.strip() + "..."


def is_valid_image_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    known_host = any(host in parsed.hostname for host in KNOWN_IMAGE_HOSTS)
    return known_host or bool(_IMAGE_EXT_RE.search(parsed.path))


def validate_params(image_url: str | None, category: str, condition: str) -> None:
    if not image_url:
        raise no_image_error()
    if not is_valid_image_url(image_url):
        raise invalid_image_error("Invalid image URL format")
    if category not in CATEGORIES:
        raise AIError("INVALID_PARAMS", f"Invalid category: {category}")
    if condition not in CONDITIONS:
        raise AIError("INVALID_PARAMS", f"Invalid condition: {condition}")


def split_title(content: str) -> tuple[str | None, str]:
    match = _TITLE_RE.match(content)
    if not match:
        return None, content
    return match.group(1).strip(), _TITLE_LINE_RE.sub("", content, count=1).strip()


def _map_provider_error(error: VisionProviderError) -> AIError:
    if error.timeout:
        return timeout_error()
    if error.status == 429:
        return rate_limit_error(error.retry_after)
    if error.status == 400:
        return invalid_image_error("Image could not be processed by API")
    return openai_error(f"OpenAI API error: {error}")


def _call_model(vision: VisionProvider, prompt: dict, image_url: str, model: str):
    return vision.complete(
        system_prompt=prompt["system_prompt"],
        user_text=prompt["user_prompt"],
        image_urls=[image_url],
        model=model,
        max_tokens=prompt["max_tokens"],
        temperature=prompt["temperature"],
        top_p=TOP_P,
        detail="high",
        timeout=REQUEST_TIMEOUT_SECONDS,
    )


def generate_product_description(
    image_url: str | None,
    category: str,
    condition: str,
    *,
    title: str | None = None,
    template: str = "detailed",
    provider: VisionProvider | None = None,
) -> dict:
    """Write a listing description from a single product photo.

    Returns ``{description, suggested_title, word_count, character_count,
    attributes}``. Raises AIError with a specific code on every failure.
    """
    validate_params(image_url, category, condition)
    if template not in DESCRIPTION_STYLES:
        raise AIError("INVALID_PARAMS", f"Invalid template: {template}")

    config = current_app.config if has_app_context() else {}
    primary = (config.get("OPENAI_MODEL") or DESCRIPTION_MODEL).strip()
    fallback = (config.get("OPENAI_FALLBACK_MODEL") or FALLBACK_MODEL).strip()
    prompt = generate_prompt(category=category, condition=condition, style=template, title=title)
    started = time.perf_counter()

    try:
        vision = provider or build_vision_provider(config)
    except (IntegrationDisabledError, IntegrationMisconfiguredError) as e:
        raise openai_error(str(e)) from e

    model = primary
    try:
        try:
            completion = _call_model(vision, prompt, image_url, model)
        except VisionProviderError as e:
            if e.status != 429 or not fallback or fallback == primary:
                raise
            model = fallback
            completion = _call_model(vision, prompt, image_url, model)
    except VisionProviderError as e:
        log_ai_call("description", started_at=started, status="error", model=model, status_code=e.status)
        raise _map_provider_error(e) from e

    content = (completion.content or "").strip()
    if not content:
        raise openai_error("No description generated from API response")

    suggested_title, description = split_title(content)
    description = truncate_description(description)
    words = word_count(description)
    if words < MIN_DESCRIPTION_WORDS:
        raise validation_error("Generated description is too short")

    log_ai_call(
        "description",
        started_at=started,
        status="ok",
        model=completion.model or model,
        tokens=completion.total_tokens,
        template=template,
    )
    return {
        "description": description,
        "suggested_title": suggested_title,
        "word_count": words,
        "character_count": len(description),
        "attributes": extract_attributes(description),
    }


def generate_multiple_descriptions(
    image_url: str | None,
    category: str,
    condition: str,
    *,
    title: str | None = None,
    provider: VisionProvider | None = None,
) -> dict:
    return {
        style: generate_product_description(
            image_url, category, condition, title=title, template=style, provider=provider
        )
        for style in DESCRIPTION_STYLES
    }
