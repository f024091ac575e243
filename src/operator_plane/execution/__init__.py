"""Provider operation execution: catalog, invoker, retry, dead letters, plans."""

from operator_plane.execution.catalog import ProviderCatalog
from operator_plane.execution.context import ExecutionContext, OperatorContext
from operator_plane.execution.discovery import ProviderPack, discover_packs
from operator_plane.execution.dlq import DeadLetterEntry, DeadLetterSink
from operator_plane.execution.invoker import OperationInvoker, ProviderRunner
from operator_plane.execution.models import Domain, ExecutionKind, OperationOutcome
from operator_plane.execution.retry import EgressJob, RetryPolicy

__all__ = [
    "DeadLetterEntry",
    "DeadLetterSink",
    "Domain",
    "EgressJob",
    "ExecutionContext",
    "ExecutionKind",
    "OperationInvoker",
    "OperationOutcome",
    "OperatorContext",
    "ProviderCatalog",
    "ProviderPack",
    "ProviderRunner",
    "RetryPolicy",
    "discover_packs",
]
