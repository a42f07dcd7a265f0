"""Task scheduling for tfout.

This module provides the work queue that serializes reconciliation of each
object while allowing different objects to be processed concurrently.
"""

from .queue import WorkQueue

__all__ = ["WorkQueue"]
