"""Tests for parsing Terraform state files."""

import json

import pytest

from tfout.backend import OutputValue, Snapshot, parse_state
from tfout.exceptions import MalformedSnapshot

STATE = {
    "version": 4,
    "terraform_version": "1.6.0",
    "outputs": {
        "vpc_id": {"value": "vpc-123", "type": "string"},
        "db_pass": {"value": "secret", "type": "string", "sensitive": True},
        "subnets": {
            "value": ["subnet-a", "subnet-b"],
            "type": ["list", "string"],
            "sensitive": False,
        },
    },
    "resources": [],
}


def test_parse_state() -> None:
    """Test parsing outputs from a state file."""
    snapshot = parse_state(json.dumps(STATE).encode(), 0)
    assert snapshot == Snapshot(
        outputs={
            "vpc_id": OutputValue("vpc-123", sensitive=False),
            "db_pass": OutputValue("secret", sensitive=True),
            "subnets": OutputValue(["subnet-a", "subnet-b"], sensitive=False),
        }
    )


def test_parse_state_without_outputs() -> None:
    """Test a state file with no outputs is an empty snapshot."""
    assert parse_state('{"version": 4}', 0) == Snapshot()
    assert parse_state('{"outputs": {}}', 0) == Snapshot()


def test_null_sensitive_flag() -> None:
    """Test a null sensitive flag is treated as not sensitive."""
    snapshot = parse_state('{"outputs": {"a": {"value": 1, "sensitive": null}}}', 0)
    assert snapshot.outputs["a"] == OutputValue(1, sensitive=False)


@pytest.mark.parametrize(
    ("content", "match"),
    [
        (b"not json", "failed to parse Terraform state"),
        (b"\xff\xfe", "failed to parse Terraform state"),
        ("[]", "expected an object but was list"),
        ('{"outputs": []}', "outputs is not an object"),
        ('{"outputs": {"a": "b"}}', "output a is not an object"),
        (
            '{"outputs": {"a": {"value": 1, "sensitive": "yes"}}}',
            "output a has non-boolean sensitive flag",
        ),
    ],
    ids=["invalid-json", "invalid-utf8", "list", "outputs-list", "output-str", "flag"],
)
def test_malformed_state(content: bytes | str, match: str) -> None:
    """Test that malformed state files are rejected with the backend index."""
    with pytest.raises(MalformedSnapshot, match=match) as exc_info:
        parse_state(content, 2)
    assert exc_info.value.backend_index == 2
    assert str(exc_info.value).startswith("backend 2: ")
