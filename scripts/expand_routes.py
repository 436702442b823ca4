#!/usr/bin/env python3
"""
Preview the concrete ARM routes an ArmGateway call would fan out to.

Resolves an ``armRoute`` template against each resource id exactly as the
gateway does, without acquiring a token or calling Azure. Useful when
authoring templates for dashboards and workbooks.
"""

import argparse
import json
import sys
from typing import List, Optional

from service_inventory.app.domain.inputs import parse_resource_ids
from service_inventory.app.fanout.templater import RouteTemplate
from shared.errors import ParameterUnresolvedError


def preview(arm_route: str, resource_ids: List[str], management_host: str) -> List[dict]:
    """Return one ``{url, binding}`` entry per resource id."""
    template = RouteTemplate(arm_route)
    host = management_host.rstrip("/")
    return [
        {"url": f"{host}{request.route}", "binding": request.binding}
        for request in template.build_requests(resource_ids)
    ]


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Preview ArmGateway fan-out routes.")
    parser.add_argument("--arm-route", required=True, help="Route template with $name placeholders")
    parser.add_argument("--resource-ids", required=True, help="Comma separated (optionally quoted) resource ids")
    parser.add_argument("--management-host", default="https://management.azure.com", help="ARM host prefix")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        routes = preview(args.arm_route, parse_resource_ids(args.resource_ids), args.management_host)
    except ParameterUnresolvedError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 1

    print(json.dumps(routes, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
