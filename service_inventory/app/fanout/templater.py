"""
Route templates with ``$name`` placeholders resolved against ARM resource ids.

A template such as::

    /subscriptions/$subscriptions/resourceGroups/$resourceGroups/providers/Microsoft.Web/sites/$sites?api-version=2022-03-01

names each placeholder after the resource id segment that precedes the value
to substitute. Resolving it against
``/subscriptions/1/resourceGroups/g/providers/Microsoft.Web/sites/siteA``
binds ``subscriptions=1``, ``resourceGroups=g`` and ``sites=siteA``.

The ``$`` marker keeps templates clear of the ``{param}`` syntax used by the
layer that hosts the gateway, so a template can be embedded in it verbatim.
"""

import re
from typing import Iterable, List, Optional, Pattern, Sequence

from shared.errors import ParameterUnresolvedError

from .models import ConcreteRequest, ParameterBinding

PLACEHOLDER_MARKER = "$"


def extract_placeholder_names(template: str) -> List[str]:
    """Return the placeholder names in the path portion of ``template``.

    Only segments before the first ``?`` are scanned, so markers inside the
    query string are left alone. Names keep their first-appearance order and
    repeated names are reported once.
    """
    path = template.split("?", 1)[0]
    names: List[str] = []
    for segment in path.split("/"):
        if segment.startswith(PLACEHOLDER_MARKER) and len(segment) > 1:
            name = segment[len(PLACEHOLDER_MARKER):]
            if name not in names:
                names.append(name)
    return names


def resolve_binding(names: Iterable[str], identifier: str) -> ParameterBinding:
    """Bind every placeholder name to the segment following it in ``identifier``.

    Segment names are matched case-insensitively, as ARM does. Raises
    ParameterUnresolvedError for the first name that is absent or sits in the
    identifier's final segment.
    """
    segments = [segment for segment in identifier.split("/") if segment]
    lowered = [segment.lower() for segment in segments]

    binding: ParameterBinding = {}
    for name in names:
        try:
            index = lowered.index(name.lower())
        except ValueError:
            raise ParameterUnresolvedError(name, identifier) from None
        if index >= len(segments) - 1:
            raise ParameterUnresolvedError(name, identifier)
        binding[name] = segments[index + 1]
    return binding


def _placeholder_pattern(names: Sequence[str]) -> Optional[Pattern[str]]:
    if not names:
        return None
    # Longest first so $sub never shadows $subscriptions.
    alternation = "|".join(re.escape(name) for name in sorted(names, key=len, reverse=True))
    return re.compile(re.escape(PLACEHOLDER_MARKER) + "(" + alternation + ")")


def expand(template: str, binding: ParameterBinding) -> str:
    """Substitute every ``$name`` in ``template`` with its bound value.

    The template is scanned once and substituted values are never rescanned.
    Values are inserted verbatim, without escaping.
    """
    pattern = _placeholder_pattern(list(binding))
    if pattern is None:
        return template
    return pattern.sub(lambda match: binding[match.group(1)], template)


class RouteTemplate:
    """A parsed route template that builds one request per identifier."""

    def __init__(self, template: str):
        self.template = template
        self.placeholder_names = extract_placeholder_names(template)

    def __repr__(self) -> str:
        return f"RouteTemplate({self.template!r})"

    def resolve(self, identifier: str) -> ParameterBinding:
        return resolve_binding(self.placeholder_names, identifier)

    def expand(self, binding: ParameterBinding) -> str:
        return expand(self.template, binding)

    def build_request(self, identifier: str, method: str = "GET", body: Optional[str] = None) -> ConcreteRequest:
        """Resolve and expand the template for a single identifier."""
        binding = self.resolve(identifier)
        return ConcreteRequest(
            route=self.expand(binding),
            identifier=identifier,
            binding=binding,
            method=method,
            body=body,
        )

    def build_requests(
        self,
        identifiers: Iterable[str],
        method: str = "GET",
        body: Optional[str] = None,
    ) -> List[ConcreteRequest]:
        """Build requests for every identifier, preserving their order."""
        return [self.build_request(identifier, method=method, body=body) for identifier in identifiers]
