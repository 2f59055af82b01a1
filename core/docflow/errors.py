"""Exception hierarchy for docflow.

Per-node failures never surface as exceptions to the caller; they are
recorded as ErrorRecords by the executor. The classes here cover the
failures that do escape: bad node configuration, pipeline faults that
trigger the fallback path, and bad orchestrator settings.
"""


class DocflowError(Exception):
    """Base class for all docflow errors."""


class ConfigError(DocflowError):
    """Orchestrator or runtime configuration is invalid."""


class NodeConfigError(DocflowError):
    """A node configuration record is malformed or conflicts with the catalog.

    Raised at construction/registration time, before any document is processed.
    """


class NodeTimeoutError(DocflowError):
    """A node did not settle within its timeout."""

    def __init__(self, node_name: str, timeout: float):
        self.node_name = node_name
        self.timeout = timeout
        super().__init__(f"timeout: node {node_name} did not complete within {timeout:g}s")


class PipelineError(DocflowError):
    """The multi-node pipeline failed as a whole (not a single node)."""
