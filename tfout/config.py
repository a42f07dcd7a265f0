"""Configuration objects for tfout."""

import datetime
from dataclasses import dataclass, field

from .policy import SensitivityPolicy, SnapshotSensitivityPolicy

DEFAULT_SYNC_INTERVAL = datetime.timedelta(minutes=5)


@dataclass
class S3FetcherConfig:
    """Configuration for the S3 backend fetcher."""

    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    max_attempts: int = 5
    """Attempts made by botocore, with exponential backoff, per request."""

    role_session_name: str = "tfout"


@dataclass
class ControllerConfig:
    """Configuration for the TerraformOutputs controller."""

    default_sync_interval: datetime.timedelta = DEFAULT_SYNC_INTERVAL
    """Used when the object's syncInterval can't be parsed."""

    retry_steps: int = 5
    retry_backoff: float = 0.01
    """Budget for conflict-safe updates of the TerraformOutputs object."""

    reconcile_timeout: float | None = None
    """Deadline in seconds for a single reconciliation pass."""

    max_concurrent_reconciles: int = 1
    """Number of objects reconciled at once. One object is never reconciled twice at once."""

    sensitivity_policy: SensitivityPolicy = field(
        default_factory=SnapshotSensitivityPolicy
    )
