"""Parsing of Terraform state files.

Only the top level `outputs` object is read. Each output is an object of the
form `{"value": ..., "type": ..., "sensitive": bool}` and the `type` is
ignored.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from tfout.exceptions import MalformedSnapshot

__all__ = ["OutputValue", "Snapshot", "parse_state"]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputValue:
    """A single Terraform output."""

    value: Any
    sensitive: bool = False


@dataclass
class Snapshot:
    """The outputs of one Terraform state file, keyed by output name."""

    outputs: dict[str, OutputValue] = field(default_factory=dict)


def parse_state(content: bytes | str, backend_index: int) -> Snapshot:
    """Parse the outputs from the contents of a Terraform state file."""
    try:
        doc = json.loads(content)
    except (json.JSONDecodeError, UnicodeDecodeError) as err:
        raise MalformedSnapshot(
            backend_index, f"failed to parse Terraform state: {err}"
        ) from err
    if not isinstance(doc, dict):
        raise MalformedSnapshot(
            backend_index,
            f"failed to parse Terraform state: expected an object but was {type(doc).__name__}",
        )
    raw_outputs = doc.get("outputs")
    if raw_outputs is None:
        _LOGGER.debug("Terraform state for backend %d has no outputs", backend_index)
        return Snapshot()
    if not isinstance(raw_outputs, dict):
        raise MalformedSnapshot(
            backend_index, "failed to parse Terraform state: outputs is not an object"
        )

    outputs: dict[str, OutputValue] = {}
    for key, output in raw_outputs.items():
        if not isinstance(output, dict):
            raise MalformedSnapshot(
                backend_index,
                f"failed to parse Terraform state: output {key} is not an object",
            )
        sensitive = output.get("sensitive")
        if sensitive is None:
            sensitive = False
        elif not isinstance(sensitive, bool):
            raise MalformedSnapshot(
                backend_index,
                f"failed to parse Terraform state: output {key} has non-boolean sensitive flag",
            )
        outputs[key] = OutputValue(value=output.get("value"), sensitive=sensitive)
    return Snapshot(outputs=outputs)
