from __future__ import annotations

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI

from app.integrations.vision.base import VisionCompletion, VisionProvider, VisionProviderError


def _retry_after(error: APIStatusError) -> int | None:
    try:
        raw = error.response.headers.get("retry-after")
    except AttributeError:
        return None
    try:
        return int(raw) if raw else None
    except (TypeError, ValueError):
        return None


class OpenAIVisionProvider(VisionProvider):
    name = "openai"

    def __init__(self, *, api_key: str, timeout: float = 30.0, max_retries: int = 2):
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=max_retries)

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
        content = [{"type": "text", "text": user_text}]
        for url in image_urls:
            content.append({"type": "image_url", "image_url": {"url": url, "detail": detail}})
        kwargs = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": content},
            ],
            "max_tokens": int(max_tokens),
            "temperature": float(temperature),
            "timeout": float(timeout),
        }
        if top_p is not None:
            kwargs["top_p"] = float(top_p)
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            completion = self.client.chat.completions.create(**kwargs)
        except APITimeoutError as e:
            raise VisionProviderError(f"VISION_TIMEOUT:{e}", timeout=True) from e
        except APIStatusError as e:
            raise VisionProviderError(
                f"VISION_FAILED:{e.message}",
                status=int(e.status_code),
                retry_after=_retry_after(e),
            ) from e
        except APIConnectionError as e:
            raise VisionProviderError(f"VISION_UNREACHABLE:{e}") from e

        choice = completion.choices[0] if completion.choices else None
        text = ((choice.message.content if choice and choice.message else None) or "").strip()
        usage = {}
        if completion.usage is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }
        return VisionCompletion(content=text, model=completion.model or model, usage=usage)
