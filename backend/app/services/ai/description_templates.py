"""Prompt templates for product description generation.

Three styles are offered (detailed, concise, seo). Each carries its own
system prompt, a user prompt builder, the expected word range and the
sampling parameters sent to the vision model.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable


DESCRIPTION_STYLES = ("detailed", "concise", "seo")

CATEGORY_FOCUS = {
    "ELECTRONICS": "brand (if visible), model details, ports/connections, screen size, color, included accessories",
    "CLOTHING": "brand (if visible), size indicators, color, material/fabric, style, pattern, fit type",
    "HOME_GARDEN": "dimensions (approximate), material, color, style/design, assembly state, functionality",
    "SPORTS": "brand (if visible), size, color, sport type, material, wear indicators",
    "BOOKS": "title, author (if visible), condition of pages, cover type, edition details, language",
    "TOYS": "brand (if visible), age range indicators, completeness, color, material, interactive features",
    "VEHICLES": "make/model (if visible), color, body type, visible modifications, wheel condition, exterior state",
    "COLLECTIBLES": "brand/manufacturer, era/vintage indicators, material, authenticity markers, completeness",
    "BABY_KIDS": "brand (if visible), age range, safety features, color, material, cleanliness",
    "PET_SUPPLIES": "size indicators, material, color, pet type suitability, cleanliness, durability",
}

CONDITION_DESCRIPTORS = {
    "NEW": "brand new, unopened, or unused with original packaging/tags",
    "LIKE_NEW": "barely used, excellent condition with minimal to no signs of wear",
    "GOOD": "gently used, fully functional with minor cosmetic wear",
    "FAIR": "moderate use visible, fully functional but shows wear",
    "POOR": "heavy wear visible, may need repairs or have cosmetic damage",
}

SAFETY_GUIDELINES = """
IMPORTANT GUIDELINES:
- Only describe what is clearly visible in the image
- Do not make assumptions about features not shown
- Avoid superlatives or exaggerated marketing language
- Do not mention prices (seller will set separately)
- Exclude any personally identifiable information if visible
- Focus on factual, observable attributes
- Use South African spelling (colour not color, centre not center)
- Currency references should use "R" for Rand
- Avoid mentioning competing brands or marketplaces
"""

ERROR_MESSAGES = {
    "IMAGE_UNCLEAR": "The image is not clear enough to generate an accurate description. Please upload a clearer photo.",
    "MULTIPLE_ITEMS": "Multiple items detected. Please upload a photo of a single item for best results.",
    "INAPPROPRIATE_CONTENT": "Unable to generate description due to content guidelines.",
    "API_ERROR": "Failed to generate description. Please try again.",
    "VALIDATION_FAILED": "Generated description did not meet quality standards. Please try again.",
}

SELLER_TIPS = [
    "Take photos in good lighting with a clean background",
    "Include multiple angles if your item has important details on different sides",
    "Make sure brand names and model numbers are visible if applicable",
    "Clean your item before photographing for the best presentation",
    "Avoid cluttered backgrounds that might confuse the AI",
    "For clothing, lay items flat or use a hanger for clear visibility",
    "Include any accessories or original packaging in the photo",
]

PROHIBITED_PATTERNS = [
    re.compile(r"R\s*\d+"),
    re.compile(r"\b(?:whatsapp|email|phone|call|contact)\b", re.IGNORECASE),
    re.compile(r"\b(?:gumtree|olx|facebook|marketplace)\b", re.IGNORECASE),
    re.compile(r"\b(?:urgent|hurry|limited time)\b", re.IGNORECASE),
]


def category_label(category: str) -> str:
    return category.replace("_", " & ", 1)


@dataclass(frozen=True)
class DescriptionTemplate:
    system_prompt: str
    user_prompt: Callable[..., str]
    min_words: int
    max_words: int
    max_characters: int
    temperature: float
    max_tokens: int


def _detailed_user_prompt(*, category: str, condition: str, title: str | None = None) -> str:
    label = category_label(category)
    seller_title = f'- Seller\'s Title: "{title}" (improve if needed)' if title else ""
    title_request = (
        ""
        if title
        else "First, provide a suggested title on its own line in this exact format:\n"
        "TITLE: [suggested title - max 100 characters, specific and descriptive]\n\n"
        "Then provide the description below.\n\n"
    )
    return (
        f"Analyze this product image and create a detailed listing for a {label.lower()} item.\n\n"
        "Product Context:\n"
        f"- Category: {label}\n"
        f"- Condition: {condition} ({CONDITION_DESCRIPTORS[condition]})\n"
        f"{seller_title}\n\n"
        "Focus on these observable attributes:\n"
        f"{CATEGORY_FOCUS[category]}\n\n"
        f"{title_request}"
        "Structure your description as follows:\n"
        "1. Opening sentence: What the item is and its most notable feature\n"
        "2. Physical description: Size, color, material, design elements\n"
        "3. Condition details: Specific observations about wear, functionality\n"
        "4. Special features or included items (if visible)\n"
        "5. Ideal use case or buyer profile\n\n"
        "Requirements:\n"
        "- Length: 100-200 words\n"
        "- Write in a friendly, informative tone\n"
        "- Use present tense\n"
        "- Include relevant keywords naturally\n"
        "- Be specific about what's included/visible\n"
        "- Mention any visible defects honestly\n"
        "- End with a positive note about the item's value\n\n"
        "Remember: This is for the South African market. Use local terminology where appropriate."
    )


def _concise_user_prompt(*, category: str, condition: str, title: str | None = None) -> str:
    label = category_label(category)
    seller_title = f'- Title: "{title}"' if title else ""
    title_request = (
        ""
        if title
        else "First, provide a suggested title in this exact format:\n"
        "TITLE: [concise title - max 100 characters]\n\n"
        "Then provide the description below.\n\n"
    )
    return (
        f"Create a concise product listing for this {label.lower()} item.\n\n"
        "Context:\n"
        f"- Category: {label}\n"
        f"- Condition: {condition}\n"
        f"{seller_title}\n\n"
        f"{title_request}"
        "Write a brief 50-75 word description that covers:\n"
        "1. What the item is\n"
        "2. Key physical attributes (color, size, material)\n"
        "3. Current condition\n"
        "4. Most notable features\n\n"
        f"Focus on: {CATEGORY_FOCUS[category]}\n\n"
        "Be direct and factual. Use short sentences. Include only what's clearly visible."
    )


def _seo_user_prompt(*, category: str, condition: str, title: str | None = None) -> str:
    label = category_label(category)
    seller_title = f'- Listing Title: "{title}"' if title else ""
    title_request = (
        ""
        if title
        else "First, provide an SEO-optimized title in this exact format:\n"
        "TITLE: [SEO title - max 100 characters, include brand/model/keywords]\n\n"
        "Then provide the description below.\n\n"
    )
    return (
        f"Analyze this image and create an SEO-optimized listing for a {label.lower()} product.\n\n"
        "Product Information:\n"
        f"- Category: {label}\n"
        f"- Condition: {condition} ({CONDITION_DESCRIPTORS[condition]})\n"
        f"{seller_title}\n\n"
        "Important attributes to describe:\n"
        f"{CATEGORY_FOCUS[category]}\n\n"
        f"{title_request}"
        "Create a 120-180 word description that:\n"
        "1. Opens with the product type and key identifying features\n"
        "2. Naturally includes relevant keywords (brand, model, type, color, size)\n"
        "3. Describes physical attributes in detail\n"
        "4. Mentions condition with specific observations\n"
        "5. Includes category-relevant terms buyers might search for\n"
        '6. Uses variations of key terms (e.g., "laptop", "notebook", "portable computer")\n'
        "7. Ends with use cases or suitable buyer scenarios\n\n"
        "SEO considerations:\n"
        "- Include long-tail keywords naturally\n"
        "- Use specific product identifiers if visible\n"
        "- Mention compatible items or uses\n"
        "- Include location relevance (South Africa) if applicable\n"
        "- Vary keyword usage to avoid stuffing\n\n"
        "Write naturally while maximizing search relevance."
    )


DESCRIPTION_TEMPLATES = {
    "detailed": DescriptionTemplate(
        system_prompt=(
            "You are a professional product description writer for a trusted South African second-hand "
            "marketplace. Your role is to create detailed, honest, and engaging product descriptions that "
            "help buyers make informed decisions.\n\n"
            "Key principles:\n"
            "1. Accuracy: Only describe what you can clearly observe in the image\n"
            "2. Transparency: Be honest about the item's condition\n"
            "3. Helpfulness: Include details that buyers care about\n"
            "4. Local relevance: Use South African terminology and context\n"
            "5. Trust-building: Write in a friendly, professional tone\n\n"
            f"{SAFETY_GUIDELINES}"
        ),
        user_prompt=_detailed_user_prompt,
        min_words=100,
        max_words=200,
        max_characters=1500,
        temperature=0.7,
        max_tokens=400,
    ),
    "concise": DescriptionTemplate(
        system_prompt=(
            "You are writing brief, clear product descriptions for a South African second-hand marketplace. "
            "Focus on the essential details buyers need to know.\n\n"
            "Key principles:\n"
            "1. Brevity: Get to the point quickly\n"
            "2. Clarity: Use simple, descriptive language\n"
            "3. Accuracy: Only state what's visible\n"
            "4. Relevance: Include only the most important details\n\n"
            f"{SAFETY_GUIDELINES}"
        ),
        user_prompt=_concise_user_prompt,
        min_words=50,
        max_words=75,
        max_characters=600,
        temperature=0.6,
        max_tokens=200,
    ),
    "seo": DescriptionTemplate(
        system_prompt=(
            "You are an SEO-conscious product description writer for a South African online marketplace. "
            "Create descriptions that are both search-friendly and genuinely helpful to buyers.\n\n"
            "Key principles:\n"
            "1. Keyword integration: Include relevant search terms naturally\n"
            "2. Specificity: Use exact product names, brands, models when visible\n"
            "3. Comprehensiveness: Cover all searchable attributes\n"
            "4. Readability: Maintain natural flow despite keyword inclusion\n"
            "5. Local SEO: Include South African context where relevant\n\n"
            f"{SAFETY_GUIDELINES}"
        ),
        user_prompt=_seo_user_prompt,
        min_words=120,
        max_words=180,
        max_characters=1400,
        temperature=0.65,
        max_tokens=350,
    ),
}


def get_template(style: str) -> DescriptionTemplate:
    try:
        return DESCRIPTION_TEMPLATES[style]
    except KeyError:
        raise ValueError(f"Unknown description style: {style}") from None


def word_count(text: str) -> int:
    return len((text or "").split())


def validate_description(description: str, style: str) -> dict:
    template = get_template(style)
    issues: list[str] = []

    if len(description) > template.max_characters:
        issues.append(f"Exceeds {template.max_characters} character limit")

    words = word_count(description)
    if words < template.min_words:
        issues.append(f"Below minimum word count of {template.min_words}")
    if words > template.max_words:
        issues.append(f"Exceeds maximum word count of {template.max_words}")

    for pattern in PROHIBITED_PATTERNS:
        if pattern.search(description):
            issues.append(f"Contains prohibited content: {pattern.pattern}")

    return {"valid": not issues, "issues": issues}


def generate_prompt(*, category: str, condition: str, style: str, title: str | None = None) -> dict:
    template = get_template(style)
    return {
        "system_prompt": template.system_prompt,
        "user_prompt": template.user_prompt(category=category, condition=condition, title=title),
        "temperature": template.temperature,
        "max_tokens": template.max_tokens,
    }
