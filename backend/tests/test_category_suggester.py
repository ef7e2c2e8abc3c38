from __future__ import annotations

import json
import unittest

from app.integrations.vision.base import VisionCompletion, VisionProvider
from app.integrations.vision.mock_provider import MockVisionProvider
from app.services.ai.category_prompts import build_category_suggestion_prompt, validate_category_response
from app.services.ai.category_suggester import (
    analyze_category_distribution,
    batch_suggest_categories,
    estimate_token_usage,
    suggest_categories,
    suggest_categories_with_ab_test,
    to_image_url,
)
from app.services.ai.errors import AIError


IMAGES = ["https://res.cloudinary.com/demo/image/upload/v1/kettle.jpg"]


class _RawReplyProvider(VisionProvider):
    name = "raw"

    def __init__(self, content: str):
        self.content = content
        self.calls = []

    def complete(self, **kwargs):
        self.calls.append(kwargs)
        return VisionCompletion(content=self.content, model="raw-model")


class CategoryPromptsTestCase(unittest.TestCase):
    def test_prompt_versions_and_few_shot(self):
        for version in ("v1", "v2", "v3"):
            self.assertIn("ELECTRONICS", build_category_suggestion_prompt(version))
        self.assertIn("EXAMPLES:", build_category_suggestion_prompt("v1", include_few_shot=True))
        with self.assertRaises(ValueError):
            build_category_suggestion_prompt("v9")

    def test_validate_response_clamps_sorts_and_caps(self):
        response = {
            "suggestions": [
                {"category": "A", "parentCategory": "TOYS", "confidence": 40},
                {"category": "B", "parentCategory": "TOYS", "confidence": 150},
                {"category": "C", "parentCategory": "TOYS", "confidence": -5},
                {"category": "D", "parentCategory": "TOYS", "confidence": 70.6},
            ]
        }
        result = validate_category_response(response)
        self.assertEqual([s["category"] for s in result["suggestions"]], ["B", "D", "A"])
        self.assertEqual([s["confidence"] for s in result["suggestions"]], [100, 71, 40])

    def test_validate_response_rejects_bad_shapes(self):
        for bad in (None, {}, {"suggestions": [{"category": "A"}]}, {"suggestions": [{"category": "A", "parentCategory": "TOYS", "confidence": True}]}):
            with self.assertRaises(ValueError):
                validate_category_response(bad)


class CategorySuggesterTestCase(unittest.TestCase):
    def test_requires_images(self):
        with self.assertRaises(AIError) as ctx:
            suggest_categories([], provider=MockVisionProvider())
        self.assertEqual(ctx.exception.code, "NO_IMAGE")

    def test_mock_provider_suggestions(self):
        result = suggest_categories(IMAGES, provider=MockVisionProvider())
        self.assertEqual(result["suggestions"][0]["category"], "Kitchen Appliances")
        self.assertEqual(result["suggestions"][0]["confidence"], 92)
        self.assertFalse(result["createNew"])
        self.assertEqual(result["grouping"], "Kitchen Appliances")

    def test_request_uses_low_detail_json_mode_and_context(self):
        provider = _RawReplyProvider(json.dumps({"suggestions": [{"category": "Books", "parentCategory": "BOOKS", "confidence": 80}]}))
        result = suggest_categories(IMAGES * 7, provider=provider, context="paperback novel")
        call = provider.calls[0]
        self.assertEqual(len(call["image_urls"]), 5)
        self.assertEqual(call["detail"], "low")
        self.assertTrue(call["json_mode"])
        self.assertIn("Additional context: paperback novel", call["user_text"])
        self.assertEqual(result["grouping"], "Books")
        self.assertFalse(result["createNew"])

    def test_failures_return_fallback(self):
        for provider in (MockVisionProvider(), _RawReplyProvider("not json"), _RawReplyProvider("")):
            result = suggest_categories(IMAGES, provider=provider, context="[fail]")
            self.assertEqual(result["grouping"], "General")
            self.assertEqual(result["suggestions"][0]["confidence"], 30)
            self.assertEqual(result["qualityIssues"], ["Error analyzing image"])

    def test_ab_test_and_batch_helpers(self):
        result = suggest_categories_with_ab_test(IMAGES, test_group="v2", provider=MockVisionProvider())
        self.assertEqual(result["testGroup"], "v2")
        self.assertEqual(result["tokenUsage"], estimate_token_usage("v2", 1))
        self.assertEqual(estimate_token_usage("v2", 2), 930)
        self.assertEqual(estimate_token_usage("unknown", 0), 600)

        batch = batch_suggest_categories([IMAGES] * 6, provider=MockVisionProvider())
        self.assertEqual(len(batch), 6)
        stats = analyze_category_distribution(batch)
        self.assertEqual(stats["categoryFrequency"], {"HOME_GARDEN": 6, "ELECTRONICS": 6})
        self.assertEqual(stats["createNewRate"], 0.0)
        self.assertAlmostEqual(stats["avgConfidence"], (92 + 61) / 2)

    def test_bare_base64_becomes_data_url(self):
        self.assertEqual(to_image_url("abc123"), "data:image/jpeg;base64,abc123")
        self.assertEqual(to_image_url(IMAGES[0]), IMAGES[0])


if __name__ == "__main__":
    unittest.main()
