from __future__ import annotations

import json
import logging
import random
import time

from flask import current_app, has_app_context

from app.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from app.integrations.vision.base import VisionProvider, VisionProviderError
from app.integrations.vision.factory import build_vision_provider
from app.services.ai.category_prompts import build_category_suggestion_prompt, validate_category_response
from app.services.ai.errors import no_image_error
from app.utils.observability import log_ai_call


logger = logging.getLogger(__name__)

SUGGESTION_MODEL = "gpt-4o"
MAX_IMAGES = 5
BATCH_SIZE = 5
IMAGE_TOKENS_LOW_DETAIL = 65
RESPONSE_TOKENS = 150
USER_INSTRUCTION = "Analyze these product images and suggest appropriate categories."

AB_TEST_GROUPS = {
    "control": {"prompt_version": "v1", "include_few_shot": False},
    "v1": {"prompt_version": "v1", "include_few_shot": True},
    "v2": {"prompt_version": "v2", "include_few_shot": False},
    "v3": {"prompt_version": "v3", "include_few_shot": True},
}
_AB_PROMPT_TOKENS = {"control": 450, "v1": 750, "v2": 650, "v3": 550}


def fallback_suggestion() -> dict:
    return {
        "suggestions": [
            {
                "category": "General",
                "parentCategory": "HOME_GARDEN",
                "confidence": 30,
                "reasoning": "Unable to analyze image properly",
                "granularity": "base",
            }
        ],
        "createNew": False,
        "grouping": "General",
        "qualityIssues": ["Error analyzing image"],
    }


def to_image_url(image: str) -> str:
    if image.startswith("data:") or image.startswith("http://") or image.startswith("https://"):
        return image
    return f"data:image/jpeg;base64,{image}"


def _config():
    return current_app.config if has_app_context() else {}


def suggest_categories(
    image_urls: list[str],
    *,
    prompt_version: str = "v1",
    include_few_shot: bool = False,
    context: str | None = None,
    max_tokens: int = 300,
    temperature: float = 0.2,
    provider: VisionProvider | None = None,
) -> dict:
    """Ask the vision model for up to three category suggestions.

    Missing images raise AIError(NO_IMAGE). Every other failure, including a
    disabled provider or a malformed reply, yields fallback_suggestion().
    """
    if not image_urls:
        raise no_image_error()

    started = time.perf_counter()
    images = [to_image_url(str(img)) for img in image_urls[:MAX_IMAGES]]
    user_text = USER_INSTRUCTION
    if context:
        user_text = f"{user_text}\n\nAdditional context: {context}"

    try:
        system_prompt = build_category_suggestion_prompt(prompt_version, include_few_shot)
        vision = provider or build_vision_provider(_config())
        completion = vision.complete(
            system_prompt=system_prompt,
            user_text=user_text,
            image_urls=images,
            model=SUGGESTION_MODEL,
            max_tokens=max_tokens,
            temperature=temperature,
            detail="low",
            json_mode=True,
        )
        if not completion.content:
            raise ValueError("No response from vision model")
        result = validate_category_response(json.loads(completion.content))
    except (
        VisionProviderError,
        IntegrationDisabledError,
        IntegrationMisconfiguredError,
        ValueError,
    ) as e:
        logger.warning("ai_category_suggestion_failed: %s", e)
        log_ai_call(
            "category_suggestion",
            started_at=started,
            status="fallback",
            model=SUGGESTION_MODEL,
            prompt_version=prompt_version,
            error=str(e)[:200],
        )
        return fallback_suggestion()

    result.setdefault("createNew", False)
    result.setdefault("grouping", result["suggestions"][0]["category"] if result["suggestions"] else "General")
    log_ai_call(
        "category_suggestion",
        started_at=started,
        status="ok",
        model=completion.model,
        tokens=completion.total_tokens,
        prompt_version=prompt_version,
        images=len(images),
    )
    return result


def estimate_token_usage(group: str, image_count: int) -> int:
    prompt_tokens = _AB_PROMPT_TOKENS.get(group, _AB_PROMPT_TOKENS["control"])
    return IMAGE_TOKENS_LOW_DETAIL * int(image_count) + prompt_tokens + RESPONSE_TOKENS


def suggest_categories_with_ab_test(image_urls: list[str], test_group: str | None = None, **kwargs) -> dict:
    group = test_group if test_group in AB_TEST_GROUPS else random.choice(list(AB_TEST_GROUPS))
    options = dict(kwargs)
    options.update(AB_TEST_GROUPS[group])
    started = time.perf_counter()
    result = suggest_categories(image_urls, **options)
    top = result["suggestions"][0] if result.get("suggestions") else {}
    logger.info(
        "category_suggestion_ab_test group=%s response_ms=%.1f confidence=%s create_new=%s",
        group,
        (time.perf_counter() - started) * 1000.0,
        top.get("confidence"),
        result.get("createNew"),
    )
    return {**result, "testGroup": group, "tokenUsage": estimate_token_usage(group, len(image_urls))}


def batch_suggest_categories(product_images: list[list[str]], **kwargs) -> list[dict]:
    results: list[dict] = []
    for start in range(0, len(product_images), BATCH_SIZE):
        for images in product_images[start:start + BATCH_SIZE]:
            results.append(suggest_categories(images, **kwargs))
    return results


def analyze_category_distribution(responses: list[dict]) -> dict:
    category_frequency: dict[str, int] = {}
    grouping_patterns: dict[str, int] = {}
    total_confidence = 0
    total_suggestions = 0
    create_new = 0

    for response in responses:
        for suggestion in response.get("suggestions") or []:
            parent = suggestion.get("parentCategory")
            category_frequency[parent] = category_frequency.get(parent, 0) + 1
            total_confidence += int(suggestion.get("confidence") or 0)
            total_suggestions += 1
        grouping = response.get("grouping")
        grouping_patterns[grouping] = grouping_patterns.get(grouping, 0) + 1
        if response.get("createNew"):
            create_new += 1

    return {
        "categoryFrequency": category_frequency,
        "avgConfidence": (total_confidence / total_suggestions) if total_suggestions else 0.0,
        "createNewRate": (create_new / len(responses)) * 100 if responses else 0.0,
        "groupingPatterns": grouping_patterns,
    }
