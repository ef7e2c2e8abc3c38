from __future__ import annotations

import json
import os

from app.integrations.vision.base import VisionCompletion, VisionProvider, VisionProviderError


MOCK_CATEGORY_REPLY = {
    "suggestions": [
        {
            "category": "Kitchen Appliances",
            "parentCategory": "HOME_GARDEN",
            "confidence": 92,
            "reasoning": "Countertop appliance with visible controls",
            "granularity": "subcategory",
        },
        {
            "category": "Small Appliances",
            "parentCategory": "ELECTRONICS",
            "confidence": 61,
            "reasoning": "Electronic device with power cord",
            "granularity": "subcategory",
        },
    ],
    "createNew": False,
    "grouping": "Kitchen Appliances",
}

MOCK_DESCRIPTION_REPLY = (
    "TITLE: Silver Stainless Steel Kettle in Good Condition\n\n"
    "This silver kettle has a brushed steel body and a comfortable black handle. "
    "It holds roughly 1.7 litres and boils quickly on its cordless base. "
    "The exterior shows light marks from normal kitchen use, while the spout and lid "
    "close firmly. A practical choice for a student flat or a first home."
)


class MockVisionProvider(VisionProvider):
    name = "mock"

    def _force_failure(self, user_text: str) -> bool:
        return "[fail]" in (user_text or "").lower() or (os.getenv("MOCK_VISION_FORCE_FAIL") or "").strip() == "1"

    def complete(
        self,
        *,
        system_prompt: str,
        user_text: str,
        image_urls: list[str],
        model: str,
        max_tokens: int,
        temperature: float,
        detail: str = "low",
        top_p: float | None = None,
        json_mode: bool = False,
        timeout: float = 30.0,
    ) -> VisionCompletion:
        if self._force_failure(user_text):
            raise VisionProviderError("VISION_FAILED:mock forced failure", status=500)
        content = json.dumps(MOCK_CATEGORY_REPLY) if json_mode else MOCK_DESCRIPTION_REPLY
        tokens = 65 * len(image_urls) + len(system_prompt) // 4
        return VisionCompletion(content=content, model=f"mock-{model}", usage={"total_tokens": tokens})
