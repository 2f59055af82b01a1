"""Inference, legacy-analysis and feature-detection collaborators."""

from docflow.llm.mock import MockInferenceProvider, MockLegacyAnalyzer, StaticFeatureDetector
from docflow.llm.provider import (
    ContentPart,
    FeatureDetector,
    InferenceProvider,
    InferenceResult,
    LegacyAnalyzer,
    LegacyResult,
    content_text,
)

__all__ = [
    "ContentPart",
    "FeatureDetector",
    "InferenceProvider",
    "InferenceResult",
    "LegacyAnalyzer",
    "LegacyResult",
    "content_text",
    "MockInferenceProvider",
    "MockLegacyAnalyzer",
    "StaticFeatureDetector",
]

try:
    from docflow.llm.litellm import (  # noqa: F401
        LiteLLMFeatureDetector,
        LiteLLMInferenceProvider,
        LiteLLMLegacyAnalyzer,
    )

    __all__ += ["LiteLLMInferenceProvider", "LiteLLMLegacyAnalyzer", "LiteLLMFeatureDetector"]
except ImportError:
    pass
