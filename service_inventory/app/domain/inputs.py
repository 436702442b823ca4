"""
Parsing of the comma separated identifier lists accepted by the entry points.
"""

import json
from typing import List, Optional

from shared.errors import InvalidInputError


def parse_resource_ids(raw: str) -> List[str]:
    """Split ``resourceIds``: comma separated, each optionally single-quoted."""
    resource_ids = []
    for entry in raw.split(","):
        resource_id = entry.strip().strip("'").strip()
        if resource_id:
            resource_ids.append(resource_id)
    return resource_ids


def parse_scopes(raw: str) -> List[str]:
    """Split ``scope`` and normalise each entry to a single leading slash."""
    scopes = []
    for entry in raw.split(","):
        scope = entry.strip().strip("'").strip("/")
        if scope:
            scopes.append("/" + scope)
    return scopes


def require_arm_inputs(arm_route: Optional[str], resource_ids: Optional[str]) -> List[str]:
    if not arm_route or not resource_ids:
        raise InvalidInputError(
            details={"detail": "Both 'armRoute' and 'resourceIds' query parameters are required."}
        )
    parsed = parse_resource_ids(resource_ids)
    if not parsed:
        raise InvalidInputError(details={"detail": "'resourceIds' did not contain any resource id."})
    return parsed


def decode_body(raw: bytes) -> str:
    """Decode a request body as UTF-8."""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidInputError(details={"detail": "The request body must be UTF-8 encoded JSON."}) from None


def require_cost_inputs(scope: Optional[str], body: str) -> List[str]:
    if not scope:
        raise InvalidInputError(details={"detail": "The 'scope' query parameter is required."})
    scopes = parse_scopes(scope)
    if not scopes:
        raise InvalidInputError(details={"detail": "'scope' did not contain any scope."})
    if not body.strip():
        raise InvalidInputError(details={"detail": "A cost query request body is required."})
    try:
        json.loads(body)
    except ValueError:
        raise InvalidInputError(details={"detail": "The request body must be a JSON document."}) from None
    return scopes
