"""
Value types passed between the templater, the executor and the mergers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

ParameterBinding = Dict[str, str]


@dataclass(frozen=True)
class ConcreteRequest:
    """A route with every placeholder substituted, paired with its binding."""

    route: str
    identifier: str
    binding: ParameterBinding = field(default_factory=dict)
    method: str = "GET"
    body: Optional[str] = None


@dataclass(frozen=True)
class UpstreamResponse:
    """A successful upstream answer for one concrete request."""

    request: ConcreteRequest
    status_code: int
    text: str
    payload: Any

    @property
    def binding(self) -> ParameterBinding:
        return self.request.binding
