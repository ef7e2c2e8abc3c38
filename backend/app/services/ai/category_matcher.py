"""Fuzzy matching of suggested category names against the existing taxonomy."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable


REUSE_CONFIDENCE = 80
REVIEW_THRESHOLD = 0.6
DEFAULT_THRESHOLD = 0.8
SIMILAR_FLOOR = 0.5

BRAND_KEYWORDS = ("iphone", "samsung", "nike", "adidas", "apple", "sony")
_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-&]+$")


@dataclass
class CategoryMatch:
    suggested: str
    match: Any = None
    confidence: int = 0
    should_create_new: bool = True
    similar_categories: list[dict] = field(default_factory=list)

    @property
    def match_name(self) -> str | None:
        return category_name(self.match) if self.match is not None else None

    def to_dict(self) -> dict:
        return {
            "suggested": self.suggested,
            "match": self.match_name,
            "confidence": self.confidence,
            "shouldCreateNew": self.should_create_new,
            "similarCategories": list(self.similar_categories),
        }


def _percent(score: float) -> int:
    return int(math.floor(score * 100 + 0.5))


def category_name(category: Any) -> str:
    if isinstance(category, str):
        return category
    if isinstance(category, dict):
        return str(category.get("name") or "")
    return str(getattr(category, "name", "") or "")


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def calculate_string_similarity(str1: str, str2: str) -> float:
    s1 = (str1 or "").lower().strip()
    s2 = (str2 or "").lower().strip()
    if s1 == s2:
        return 1.0
    if not s1 or not s2:
        return 0.0

    similarity = 1 - levenshtein_distance(s1, s2) / max(len(s1), len(s2))

    words1 = s1.split()
    words2 = s2.split()
    if words1[0] == words2[0]:
        similarity += 0.15
    if s1 in s2 or s2 in s1:
        similarity += 0.1

    shorter, longer = (words1, words2) if len(words1) < len(words2) else (words2, words1)
    overlap = sum(1 for w in shorter if w in longer) / len(shorter)
    similarity += overlap * 0.1

    return min(1.0, similarity)


def find_best_category_match(
    suggested_name: str,
    existing_categories: Iterable[Any],
    similarity_threshold: float = DEFAULT_THRESHOLD,
) -> CategoryMatch:
    existing = list(existing_categories or [])
    if not suggested_name or not existing:
        return CategoryMatch(suggested=suggested_name or "")

    normalized = suggested_name.lower().strip()
    best, best_score = None, 0.0
    similar: list[dict] = []

    for category in existing:
        name = category_name(category)
        if normalized == name.lower().strip():
            return CategoryMatch(suggested=suggested_name, match=category, confidence=100, should_create_new=False)
        score = calculate_string_similarity(normalized, name)
        if score >= SIMILAR_FLOOR:
            similar.append({"name": name, "similarity": _percent(score)})
        if score > best_score:
            best, best_score = category, score

    similar.sort(key=lambda item: item["similarity"], reverse=True)
    return CategoryMatch(
        suggested=suggested_name,
        match=best,
        confidence=_percent(best_score),
        should_create_new=best_score < similarity_threshold,
        similar_categories=similar[:3],
    )


def batch_match_categories(
    suggestions: Iterable[str],
    existing_categories: Iterable[Any],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[CategoryMatch]:
    existing = list(existing_categories or [])
    return [find_best_category_match(name, existing, threshold) for name in suggestions]


def get_category_recommendations(match_results: Iterable[CategoryMatch]) -> dict:
    """Split match results into reuse (>=80), review (below 80) and create buckets.

    Which results count as "create" is decided by the threshold used when
    matching; see recommend_categories for the 60% review floor.
    """
    should_create_new: list[str] = []
    should_reuse: list[dict] = []
    needs_review: list[dict] = []
    for result in match_results:
        if result.should_create_new or result.match is None:
            should_create_new.append(result.suggested or result.match_name or "Unknown")
        elif result.confidence >= REUSE_CONFIDENCE:
            should_reuse.append({"suggested": result.suggested, "existing": result.match_name})
        else:
            needs_review.append(
                {"suggested": result.suggested, "existing": result.match_name, "confidence": result.confidence}
            )
    return {
        "shouldCreateNew": should_create_new,
        "shouldReuse": should_reuse,
        "needsReview": needs_review,
    }


def recommend_categories(suggested_names: Iterable[str], existing_categories: Iterable[Any]) -> dict:
    results = batch_match_categories(suggested_names, existing_categories, threshold=REVIEW_THRESHOLD)
    recommendations = get_category_recommendations(results)
    recommendations["matches"] = [r.to_dict() for r in results]
    return recommendations


def validate_category_name(category_name_value: str) -> dict:
    name = category_name_value or ""
    errors: list[str] = []
    suggestions: list[str] = []

    if len(name) < 3:
        errors.append("Category name must be at least 3 characters")
    if len(name) > 50:
        errors.append("Category name must be less than 50 characters")
    if not _NAME_RE.match(name):
        errors.append("Category name can only contain letters, numbers, spaces, hyphens, and ampersands")

    words = name.split(" ")
    if not all(not w or w[0] == w[0].upper() for w in words):
        titled = " ".join(w[:1].upper() + w[1:].lower() for w in words)
        suggestions.append(f"Consider title case: {titled}")

    lower = name.lower()
    if any(brand in lower for brand in BRAND_KEYWORDS):
        errors.append('Category names should be brand-agnostic (e.g., "Smartphones" not "iPhones")')
        suggestions.append("Use generic terms instead of brand names")

    return {"valid": not errors, "errors": errors, "suggestions": suggestions or None}
