"""LiteLLM-backed collaborators.

LiteLLM gives one async interface over OpenAI, Anthropic, Gemini, Azure
and local models, so the same schema-driven nodes run against whichever
model ``RuntimeConfig.model`` names (``"openai/gpt-4o-mini"``,
``"anthropic/claude-haiku-4-5-20251001"``, ...).
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

import litellm

from docflow.config import RuntimeConfig
from docflow.llm.provider import (
    ContentPart,
    FeatureDetector,
    InferenceProvider,
    InferenceResult,
    LegacyAnalyzer,
    LegacyResult,
)

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You extract structured information from documents. Return only JSON that "
    "matches the provided schema. Use null or omit fields you cannot find; never invent "
    "values. Write free-text values in {language}."
)

LEGACY_SYSTEM_PROMPT = (
    "You analyze documents in a single pass. Return a JSON object with a 'summary', "
    "a list of 'recommendations', and any structured sections you can identify. "
    "Write free-text values in {language}."
)

DETECTION_SYSTEM_PROMPT = (
    "You classify documents. For each feature flag listed, answer true if the document "
    "contains that kind of content and false otherwise. Return a JSON object mapping every "
    "flag name to a boolean."
)


def _parse_json(text: str) -> Any:
    """Parse model output as JSON, tolerating a fenced ```json block."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.startswith("json"):
            stripped = stripped[4:]
    return json.loads(stripped)


class LiteLLMInferenceProvider(InferenceProvider):
    """Schema-driven extraction through ``litellm.acompletion``."""

    name = "litellm"

    def __init__(self, config: RuntimeConfig | None = None):
        self.config = config or RuntimeConfig()

    def _completion_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        return kwargs

    async def _complete_json(
        self,
        system: str,
        user_parts: list[ContentPart],
        response_format: dict[str, Any],
        temperature: float | None,
    ) -> tuple[Any, Any]:
        response = await litellm.acompletion(
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_parts},
            ],
            response_format=response_format,
            temperature=self.config.temperature if temperature is None else temperature,
            **self._completion_kwargs(),
        )
        text = response.choices[0].message.content or ""
        return _parse_json(text), response

    async def extract(
        self,
        schema: dict[str, Any],
        content: Sequence[ContentPart],
        *,
        language: str = "English",
        temperature: float | None = None,
    ) -> InferenceResult:
        schema_name = str(schema.get("title") or "extraction").replace(" ", "_")[:64]
        instruction = schema.get("description") or f"Extract {schema_name} from the document."

        data, response = await self._complete_json(
            system=EXTRACTION_SYSTEM_PROMPT.format(language=language),
            user_parts=[{"type": "text", "text": instruction}, *content],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema},
            },
            temperature=temperature,
        )

        usage = getattr(response, "usage", None)
        result = InferenceResult(
            data=data,
            model=getattr(response, "model", self.config.model) or self.config.model,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            provider=self.name,
            raw_response=response,
        )
        logger.debug(
            f"Extracted '{schema_name}' with {result.model}",
            extra={"tokens_used": result.tokens_used},
        )
        return result


class LiteLLMLegacyAnalyzer(LegacyAnalyzer):
    """Single-call whole-document analysis, used when the node pipeline fails."""

    def __init__(self, provider: LiteLLMInferenceProvider | None = None):
        self._provider = provider or LiteLLMInferenceProvider()

    async def analyze(self, text: str, language: str = "English") -> LegacyResult:
        data, response = await self._provider._complete_json(
            system=LEGACY_SYSTEM_PROMPT.format(language=language),
            user_parts=[{"type": "text", "text": text}],
            response_format={"type": "json_object"},
            temperature=None,
        )
        usage = getattr(response, "usage", None)
        prompt = getattr(usage, "prompt_tokens", 0) or 0
        completion = getattr(usage, "completion_tokens", 0) or 0
        return LegacyResult(
            content=data,
            token_usage={"prompt": prompt, "completion": completion, "total": prompt + completion},
        )


class LiteLLMFeatureDetector(FeatureDetector):
    """Asks the model which of a fixed set of feature flags apply."""

    def __init__(self, flags: Sequence[str], provider: LiteLLMInferenceProvider | None = None):
        self.flags = list(dict.fromkeys(flags))
        self._provider = provider or LiteLLMInferenceProvider()

    async def detect(self, content: Sequence[ContentPart]) -> dict[str, bool]:
        schema = {
            "type": "object",
            "properties": {flag: {"type": "boolean"} for flag in self.flags},
            "required": self.flags,
            "additionalProperties": False,
        }
        data, _ = await self._provider._complete_json(
            system=DETECTION_SYSTEM_PROMPT,
            user_parts=[
                {"type": "text", "text": "Feature flags: " + ", ".join(self.flags)},
                *content,
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": "feature_detection", "schema": schema},
            },
            temperature=0.0,
        )
        if not isinstance(data, dict):
            raise ValueError(f"Feature detection returned {type(data).__name__}, expected object")
        return {flag: data.get(flag) is True for flag in self.flags}
