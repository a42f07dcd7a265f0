"""Status conditions for a resource."""

import datetime

from tfout.manifest import Condition, TerraformOutputsStatus

READY_CONDITION = "Ready"

REASON_SYNCED = "Synced"
REASON_PROGRESSING = "Progressing"
REASON_FAILED = "SyncFailed"


def set_condition(
    status: TerraformOutputsStatus,
    condition_type: str,
    condition_status: bool,
    reason: str,
    message: str,
    now: datetime.datetime,
) -> None:
    """Add or update a condition on the status.

    The transition time only moves when the condition status changes.
    """
    value = "True" if condition_status else "False"
    for condition in status.conditions:
        if condition.type != condition_type:
            continue
        if condition.status != value:
            condition.status = value
            condition.last_transition_time = now
        condition.reason = reason
        condition.message = message
        return
    status.conditions.append(
        Condition(
            type=condition_type,
            status=value,
            reason=reason,
            message=message,
            last_transition_time=now,
        )
    )


def get_condition(
    status: TerraformOutputsStatus, condition_type: str
) -> Condition | None:
    """Return the condition of the given type, if present."""
    for condition in status.conditions:
        if condition.type == condition_type:
            return condition
    return None
