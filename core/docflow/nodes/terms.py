"""Search-term generation from earlier nodes' output.

Runs in the last priority tier and reads ``SharedState.results``, which
by then holds every payload merged from earlier groups.
"""

import time
from typing import Any

from docflow.nodes.factory import DOCUMENT_CONTEXT_KEY
from docflow.nodes.node import PartialResult, ProcessingNode, ResultMetadata, SharedState

# Keys whose string values are worth indexing as search terms
TERM_KEYS = frozenset(
    {
        "name",
        "term",
        "code",
        "diagnosis",
        "signal",
        "medication",
        "procedure",
        "bodyPart",
        "finding",
        "allergen",
        "vaccine",
        "title",
    }
)
MAX_TERM_LENGTH = 120


def collect_terms(payload: Any, terms: set[str]) -> None:
    """Walk a payload and add string values found under TERM_KEYS."""
    if isinstance(payload, dict):
        for key, value in payload.items():
            if key == DOCUMENT_CONTEXT_KEY:
                continue
            if key in TERM_KEYS and isinstance(value, str):
                term = value.strip()
                if term and len(term) <= MAX_TERM_LENGTH:
                    terms.add(term.lower())
            else:
                collect_terms(value, terms)
    elif isinstance(payload, list):
        for item in payload:
            collect_terms(item, terms)


class MedicalTermsNode(ProcessingNode):
    """Builds a deduplicated term list for search from all merged results."""

    def __init__(self, exclude: frozenset[str] = frozenset({"medical-terms-generation"})):
        self.exclude = exclude

    async def run(self, state: SharedState) -> PartialResult:
        start = time.monotonic()
        terms: set[str] = set()
        sources = []
        for node_name, payload in state.results.items():
            if node_name in self.exclude:
                continue
            before = len(terms)
            collect_terms(payload, terms)
            if len(terms) > before:
                sources.append(node_name)

        data = {"terms": sorted(terms), "sourceNodes": sources} if terms else None
        return PartialResult(
            data=data,
            metadata=ResultMetadata(
                processing_time_ms=int((time.monotonic() - start) * 1000),
                confidence=1.0 if terms else None,
                provider="local",
            ),
        )
