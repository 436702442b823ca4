"""
Unit tests for inbound parameter parsing.
"""

import pytest

from service_inventory.app.domain.inputs import (
    decode_body,
    parse_resource_ids,
    parse_scopes,
    require_arm_inputs,
    require_cost_inputs,
)
from shared.errors import InvalidInputError


def test_resource_ids_strip_quotes_and_blanks():
    raw = "'/subscriptions/1/resourceGroups/g', ,/subscriptions/2/resourceGroups/h,"

    assert parse_resource_ids(raw) == [
        "/subscriptions/1/resourceGroups/g",
        "/subscriptions/2/resourceGroups/h",
    ]


def test_scopes_are_rerooted():
    raw = " 'subscriptions/1/' ,/providers/Microsoft.Management/managementGroups/mg/"

    assert parse_scopes(raw) == [
        "/subscriptions/1",
        "/providers/Microsoft.Management/managementGroups/mg",
    ]


@pytest.mark.parametrize("arm_route,resource_ids", [
    (None, "/subscriptions/1"),
    ("/subscriptions/$subscriptions", None),
    ("", ""),
    ("/subscriptions/$subscriptions", " , ,"),
])
def test_arm_inputs_required(arm_route, resource_ids):
    with pytest.raises(InvalidInputError) as exc_info:
        require_arm_inputs(arm_route, resource_ids)

    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "INVALID_INPUT"


def test_arm_inputs_parsed():
    assert require_arm_inputs("/subscriptions/$subscriptions", "'/subscriptions/1'") == ["/subscriptions/1"]


@pytest.mark.parametrize("scope,body", [
    (None, '{"type": "Usage"}'),
    ("", '{"type": "Usage"}'),
    ("/subscriptions/1", ""),
    ("/subscriptions/1", "not json"),
])
def test_cost_inputs_required(scope, body):
    with pytest.raises(InvalidInputError):
        require_cost_inputs(scope, body)


def test_cost_inputs_parsed():
    scopes = require_cost_inputs("subscriptions/1,subscriptions/2", '{"type": "Usage"}')

    assert scopes == ["/subscriptions/1", "/subscriptions/2"]


def test_body_decoded_as_utf8():
    assert decode_body('{"name": "café"}'.encode("utf-8")) == '{"name": "café"}'


def test_undecodable_body_is_invalid_input():
    with pytest.raises(InvalidInputError) as exc_info:
        decode_body(b'{"type": "\xff\xfe"}')

    assert exc_info.value.status_code == 400
