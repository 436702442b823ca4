"""
Fan-out engine for the Inventory Gateway.

- templater: ``$name`` route templates resolved against resource ids
- executor: concurrent, bounded upstream calls with fail-fast cancellation
- mergers: item-union and column-union strategies for the responses
"""

from .executor import FanOutExecutor
from .mergers import ColumnUnionMerger, ItemUnionMerger, MergeStrategy, get_merger
from .models import ConcreteRequest, ParameterBinding, UpstreamResponse
from .templater import RouteTemplate, expand, extract_placeholder_names, resolve_binding

__all__ = [
    "ColumnUnionMerger",
    "ConcreteRequest",
    "FanOutExecutor",
    "ItemUnionMerger",
    "MergeStrategy",
    "ParameterBinding",
    "RouteTemplate",
    "UpstreamResponse",
    "expand",
    "extract_placeholder_names",
    "get_merger",
    "resolve_binding",
]
