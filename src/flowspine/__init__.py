"""
flow-spine - externalized workflow content and concurrent publishing.

Workflow documents keep their large payloads (scripts, prompts, queries)
in standalone files. ``flowspine.compiler`` injects them back at publish
time and ``flowspine.deploy`` publishes changed workflows through the
external command-line tool.
"""

__version__ = "0.3.0"

from flowspine.compiler import ContentStore, WorkflowCompiler  # noqa: E402
from flowspine.deploy import ChangeTracker, DeploymentOrchestrator, Selection  # noqa: E402

__all__ = [
    "__version__",
    "ChangeTracker",
    "ContentStore",
    "DeploymentOrchestrator",
    "Selection",
    "WorkflowCompiler",
]
