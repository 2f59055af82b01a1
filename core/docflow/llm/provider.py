"""Collaborator interfaces the orchestration core depends on.

The core never talks to a model directly. Schema-driven nodes call an
``InferenceProvider``; the fallback path calls a ``LegacyAnalyzer``; the
caller (or ``Orchestrator.process``) gets feature flags from a
``FeatureDetector``. Implementations live next to this module.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

# A content part is a chat-style dict: {"type": "text", "text": "..."} or
# {"type": "image_url", "image_url": {"url": "data:..."}}
ContentPart = dict[str, Any]


def content_text(content: Sequence[ContentPart] | str) -> str:
    """Concatenate the text parts of a document's content."""
    if isinstance(content, str):
        return content
    return "\n".join(
        part.get("text", "") for part in content if part.get("type") == "text" and part.get("text")
    )


@dataclass
class InferenceResult:
    """Structured payload returned by one schema-driven extraction."""

    data: Any
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    provider: str = ""
    raw_response: Any = None

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LegacyResult:
    """Output of the single-pass legacy analysis."""

    content: Any
    token_usage: dict[str, int] = field(default_factory=lambda: {"total": 0})


class InferenceProvider(ABC):
    """
    Turns a JSON schema plus document content into structured data.

    Implementations should handle authentication, request formatting,
    token accounting and provider-side retries. Failures are raised; the
    executor turns them into per-node error records.
    """

    name: str = "inference"

    @abstractmethod
    async def extract(
        self,
        schema: dict[str, Any],
        content: Sequence[ContentPart],
        *,
        language: str = "English",
        temperature: float | None = None,
    ) -> InferenceResult:
        """
        Extract structured data matching ``schema`` from ``content``.

        Args:
            schema: JSON schema describing the expected payload. ``title``
                and ``description`` are used as the instruction.
            content: Document content parts (text and/or images)
            language: Language the extracted values should be written in
            temperature: Sampling temperature; None uses the provider default

        Returns:
            InferenceResult with the parsed payload and token counts
        """


class LegacyAnalyzer(ABC):
    """Single-pass monolithic analysis used only on the fallback path."""

    @abstractmethod
    async def analyze(self, text: str, language: str = "English") -> LegacyResult:
        """Analyze the whole document in one call."""


class FeatureDetector(ABC):
    """Produces the boolean feature flags that drive node selection."""

    @abstractmethod
    async def detect(self, content: Sequence[ContentPart]) -> dict[str, bool]:
        """Return a mapping of flag name to detected/not detected."""
