from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class VisionCompletion:
    content: str
    model: str = ""
    usage: dict = field(default_factory=dict)

    @property
    def total_tokens(self) -> int | None:
        value = (self.usage or {}).get("total_tokens")
        return int(value) if value is not None else None


class VisionProviderError(RuntimeError):
    """Upstream vision API failure.

    ``status`` is the HTTP status when the API answered, ``timeout`` marks
    requests that never completed.
    """

    def __init__(self, message: str, *, status: int | None = None, retry_after: int | None = None, timeout: bool = False):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after
        self.timeout = timeout


class VisionProvider:
    name = "unknown"

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
        raise NotImplementedError
