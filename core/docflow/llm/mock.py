"""Deterministic collaborators for tests, demos and ``docflow run --mock``."""

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from docflow.llm.provider import (
    ContentPart,
    FeatureDetector,
    InferenceProvider,
    InferenceResult,
    LegacyAnalyzer,
    LegacyResult,
    content_text,
)

# A canned response is a payload, an exception to raise, or a callable
# taking (schema, content) and returning a payload.
MockResponse = Any | BaseException | Callable[[dict[str, Any], Sequence[ContentPart]], Any]


class MockInferenceProvider(InferenceProvider):
    """
    Returns canned payloads keyed by schema ``title``.

    Example:
        provider = MockInferenceProvider(
            responses={"ecg": {"hasECG": True, "rhythm": "sinus"}},
            delays={"ecg": 0.05},
        )
    """

    name = "mock"

    def __init__(
        self,
        responses: Mapping[str, MockResponse] | None = None,
        default: MockResponse = None,
        delays: Mapping[str, float] | None = None,
        tokens_per_call: int = 10,
    ):
        self.responses = dict(responses or {})
        self.default = default
        self.delays = dict(delays or {})
        self.tokens_per_call = tokens_per_call
        self.calls: list[str] = []

    async def extract(
        self,
        schema: dict[str, Any],
        content: Sequence[ContentPart],
        *,
        language: str = "English",
        temperature: float | None = None,
    ) -> InferenceResult:
        title = str(schema.get("title", ""))
        self.calls.append(title)

        delay = self.delays.get(title, 0.0)
        if delay:
            await asyncio.sleep(delay)

        response = self.responses.get(title, self.default)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(schema, content)
        if response is None:
            response = {}

        return InferenceResult(
            data=response,
            model="mock",
            input_tokens=self.tokens_per_call // 2,
            output_tokens=self.tokens_per_call - self.tokens_per_call // 2,
            provider=self.name,
        )


class MockLegacyAnalyzer(LegacyAnalyzer):
    """Echoes a summary of the text, or raises ``error`` when given one."""

    def __init__(self, content: Any = None, error: BaseException | None = None, tokens: int = 42):
        self.content = content
        self.error = error
        self.tokens = tokens
        self.calls: list[tuple[str, str]] = []

    async def analyze(self, text: str, language: str = "English") -> LegacyResult:
        self.calls.append((text, language))
        if self.error is not None:
            raise self.error
        content = self.content if self.content is not None else {"summary": text[:200]}
        return LegacyResult(content=content, token_usage={"total": self.tokens})


class StaticFeatureDetector(FeatureDetector):
    """Returns fixed flags, or flags whose keyword appears in the text."""

    def __init__(
        self,
        flags: Mapping[str, bool] | None = None,
        keywords: Mapping[str, Sequence[str]] | None = None,
    ):
        self.flags = dict(flags or {})
        self.keywords = {k: [w.lower() for w in v] for k, v in (keywords or {}).items()}

    async def detect(self, content: Sequence[ContentPart]) -> dict[str, bool]:
        detected = dict(self.flags)
        if self.keywords:
            text = content_text(content).lower()
            for flag, words in self.keywords.items():
                detected[flag] = detected.get(flag, False) or any(w in text for w in words)
        return detected
