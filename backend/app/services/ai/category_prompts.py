"""System prompts and response validation for vision-based category suggestion.

Prompt versions trade accuracy for tokens: v1 is the tuned default, v2 the
verbose variant, v3 the minimal one.
"""
from __future__ import annotations

import json
from typing import Any


PROMPT_VERSIONS = ("v1", "v2", "v3")

CATEGORY_SUGGESTION_PROMPT_V1 = """Analyze product images and suggest categories.

CATEGORIES:
• ELECTRONICS: Phones, computers, gaming, audio
• CLOTHING: Apparel, shoes, accessories
• HOME_GARDEN: Furniture, kitchen, decor, garden
• SPORTS: Equipment, outdoor gear, fitness
• BOOKS: Physical books, textbooks, magazines
• TOYS: Children's toys, games, puzzles
• VEHICLES: Cars, bikes, parts, accessories
• COLLECTIBLES: Art, coins, stamps, memorabilia
• BABY_KIDS: Baby gear, kids furniture, strollers
• PET_SUPPLIES: Pet food, accessories, habitats

RULES:
1. Return 2-3 suggestions ranked by confidence
2. Use existing categories when possible (80%+ match)
3. Suggest subcategory level, not too specific
4. Flag unclear/inappropriate images
5. Single item focus per suggestion

OUTPUT JSON:
{
  "suggestions": [{
    "category": "Kitchen Appliances",
    "parentCategory": "HOME_GARDEN",
    "confidence": 95,
    "reasoning": "Coffee maker visible with controls",
    "granularity": "subcategory"
  }],
  "createNew": false,
  "grouping": "Kitchen Appliances"
}"""

CATEGORY_SUGGESTION_PROMPT_V2 = """You are a category classification expert for a second-hand marketplace. Analyze product images and suggest appropriate categories with intelligent grouping.

BASE CATEGORIES:
- ELECTRONICS: Technology devices, phones, computers, gaming consoles, audio equipment
- CLOTHING: Clothing items, shoes, accessories, jewelry, bags
- HOME_GARDEN: Furniture, kitchen items, home decor, garden tools, appliances
- SPORTS: Sports equipment, outdoor gear, fitness equipment, camping gear
- BOOKS: Physical books, textbooks, magazines, comics
- TOYS: Children's toys, games, puzzles, action figures
- VEHICLES: Cars, motorcycles, bicycles, parts, accessories
- COLLECTIBLES: Art, antiques, coins, stamps, memorabilia, trading cards
- BABY_KIDS: Baby gear, kids furniture, strollers, car seats
- PET_SUPPLIES: Pet food, accessories, habitats, toys

CLASSIFICATION RULES:
1. Analyze all visible products but focus on the most prominent item
2. Suggest 2-3 categories ordered by confidence (0-100)
3. Prefer existing base categories unless item clearly doesn't fit (>80% mismatch)
4. Use subcategory granularity (e.g., "Kitchen Appliances" not "Coffee Makers")
5. For multi-purpose items, suggest multiple relevant categories
6. Flag quality issues: blurry, inappropriate content, no product visible

Return valid JSON with this structure:
{
  "suggestions": [
    {
      "category": "suggested category name",
      "parentCategory": "BASE_CATEGORY",
      "confidence": 0-100,
      "reasoning": "brief explanation",
      "granularity": "base|subcategory|specific"
    }
  ],
  "createNew": boolean,
  "grouping": "recommended grouping name",
  "qualityIssues": ["optional array of issues"]
}"""

CATEGORY_SUGGESTION_PROMPT_V3 = """Classify product in image. Categories: ELECTRONICS, CLOTHING, HOME_GARDEN, SPORTS, BOOKS, TOYS, VEHICLES, COLLECTIBLES, BABY_KIDS, PET_SUPPLIES.

Return JSON:
{
  "suggestions": [{
    "category": "name",
    "parentCategory": "BASE",
    "confidence": 0-100,
    "reasoning": "why",
    "granularity": "base|subcategory|specific"
  }],
  "createNew": false,
  "grouping": "group name"
}

Rules: 2-3 suggestions, prefer existing categories, subcategory level."""

_PROMPTS = {
    "v1": CATEGORY_SUGGESTION_PROMPT_V1,
    "v2": CATEGORY_SUGGESTION_PROMPT_V2,
    "v3": CATEGORY_SUGGESTION_PROMPT_V3,
}


def _suggestion(category: str, parent: str, confidence: int, reasoning: str, granularity: str = "subcategory") -> dict:
    return {
        "category": category,
        "parentCategory": parent,
        "confidence": confidence,
        "reasoning": reasoning,
        "granularity": granularity,
    }


FEW_SHOT_EXAMPLES = [
    {
        "description": "Coffee maker image",
        "response": {
            "suggestions": [
                _suggestion("Kitchen Appliances", "HOME_GARDEN", 95, "Electric coffee maker with water reservoir and control panel"),
                _suggestion("Small Appliances", "ELECTRONICS", 60, "Electronic device with power cord"),
            ],
            "createNew": False,
            "grouping": "Kitchen Appliances",
        },
    },
    {
        "description": "Running shoes image",
        "response": {
            "suggestions": [
                _suggestion("Athletic Footwear", "SPORTS", 90, "Running shoes with athletic design and cushioning"),
                _suggestion("Footwear", "CLOTHING", 85, "Shoes as clothing accessory"),
            ],
            "createNew": False,
            "grouping": "Athletic Footwear",
        },
    },
    {
        "description": "Baby stroller image",
        "response": {
            "suggestions": [
                _suggestion("Strollers & Car Seats", "BABY_KIDS", 98, "Baby stroller with safety harness and wheels"),
            ],
            "createNew": False,
            "grouping": "Strollers & Car Seats",
        },
    },
    {
        "description": "Vintage vinyl record",
        "response": {
            "suggestions": [
                _suggestion("Vinyl Records", "COLLECTIBLES", 85, "Vintage vinyl record, collectible music item"),
                _suggestion("Music Media", "ELECTRONICS", 70, "Music storage medium"),
            ],
            "createNew": False,
            "grouping": "Vinyl Records",
        },
    },
    {
        "description": "Blurry/unclear image",
        "response": {
            "suggestions": [
                _suggestion("Unknown", "HOME_GARDEN", 20, "Image too blurry to identify product clearly", "base"),
            ],
            "createNew": False,
            "grouping": "Unknown",
            "qualityIssues": ["Image too blurry for accurate classification"],
        },
    },
]

EDGE_CASE_PROMPTS = {
    "multipleItems": (
        "Multiple items detected. Focus on the most prominent/centered item for primary "
        "classification. Mention other items in reasoning if relevant."
    ),
    "unclearImage": (
        "Image quality issues detected. Return low confidence (<30) and include in "
        'qualityIssues: ["Image too blurry/dark/unclear for accurate classification"]. '
        "Suggest broad category only."
    ),
    "inappropriateContent": """If inappropriate content detected, return: {
    "suggestions": [],
    "createNew": false,
    "grouping": "REJECTED",
    "qualityIssues": ["Inappropriate content detected"]
  }""",
    "novelCategory": (
        "For items not fitting existing categories well (<60% match), still assign to closest "
        "category but set confidence accordingly and note in reasoning why it's a partial fit."
    ),
}

TOKEN_ESTIMATES = {
    "v1": {"prompt": 450, "fewShot": 300, "response": 150, "total": 900},
    "v2": {"prompt": 650, "fewShot": 300, "response": 150, "total": 1100},
    "v3": {"prompt": 250, "fewShot": 300, "response": 150, "total": 700},
}

GROUPING_RULES = """
When determining category grouping:

1. PREFER BROADER GROUPS (subcategory level):
   ✅ "Kitchen Appliances" NOT ❌ "Coffee Makers"
   ✅ "Athletic Footwear" NOT ❌ "Nike Running Shoes"
   ✅ "Gaming Consoles" NOT ❌ "PlayStation 5"

2. AVOID OVER-FRAGMENTATION:
   - Group similar items together
   - Minimum 10+ potential items per group
   - Consider marketplace practicality

3. BRAND-AGNOSTIC NAMING:
   - Use generic terms, not brand names
   - "Smartphones" not "iPhones"
   - "Gaming Consoles" not "PlayStation"

4. MATCH EXISTING PATTERNS:
   - Check if similar grouping exists
   - Maintain consistency with base categories
   - Don't create new if 80%+ match exists
"""


def build_category_suggestion_prompt(version: str = "v1", include_few_shot: bool = False) -> str:
    base_prompt = _PROMPTS.get(version)
    if base_prompt is None:
        raise ValueError(f"Unknown prompt version: {version}")
    if not include_few_shot:
        return base_prompt
    examples = "\n\n".join(
        f"Example: {ex['description']}\nOutput: {json.dumps(ex['response'], indent=2)}"
        for ex in FEW_SHOT_EXAMPLES[:3]
    )
    return f"{base_prompt}\n\nEXAMPLES:\n{examples}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_category_response(response: Any) -> dict:
    """Normalize a parsed model reply in place and return it.

    Raises ValueError when the shape is unusable.
    """
    if not isinstance(response, dict) or not isinstance(response.get("suggestions"), list):
        raise ValueError("Invalid response: missing suggestions array")

    for suggestion in response["suggestions"]:
        if (
            not isinstance(suggestion, dict)
            or not suggestion.get("category")
            or not suggestion.get("parentCategory")
            or not _is_number(suggestion.get("confidence"))
        ):
            raise ValueError("Invalid suggestion format")
        suggestion["confidence"] = int(round(min(100, max(0, suggestion["confidence"]))))

    response["suggestions"].sort(key=lambda s: s["confidence"], reverse=True)
    response["suggestions"] = response["suggestions"][:3]
    return response
