"""Policies deciding which outputs are written to the Secret."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

__all__ = [
    "SensitivityPolicy",
    "SnapshotSensitivityPolicy",
    "AllowListSensitivityPolicy",
]


class SensitivityPolicy(ABC):
    """Decides if an output is sensitive."""

    @abstractmethod
    def is_sensitive(self, key: str, state_sensitive: bool) -> bool:
        """Return True if the output must be routed to the Secret.

        Args:
            key: The output name.
            state_sensitive: The `sensitive` flag from the Terraform state.
        """


class SnapshotSensitivityPolicy(SensitivityPolicy):
    """Trust the `sensitive` flag recorded in the Terraform state."""

    def is_sensitive(self, key: str, state_sensitive: bool) -> bool:
        return state_sensitive

    def __repr__(self) -> str:
        return "SnapshotSensitivityPolicy()"


class AllowListSensitivityPolicy(SensitivityPolicy):
    """Treat exactly the listed output names as sensitive."""

    def __init__(self, keys: Iterable[str]) -> None:
        self._keys = frozenset(keys)

    def is_sensitive(self, key: str, state_sensitive: bool) -> bool:
        return key in self._keys

    def __repr__(self) -> str:
        return f"AllowListSensitivityPolicy({sorted(self._keys)})"
