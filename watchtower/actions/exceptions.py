"""Action dispatch exceptions."""

from __future__ import annotations


class DispatchError(Exception):
    """A protective action failed.  Reported, never retried."""


class PauseTimeoutError(DispatchError):
    """A pause call did not complete within the dispatcher's timeout."""
