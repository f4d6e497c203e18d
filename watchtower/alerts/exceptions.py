"""Alerting exceptions."""

from __future__ import annotations


class AlertError(Exception):
    """Base exception for alerting errors."""


class PagingError(AlertError):
    """The external paging provider rejected or failed to receive an alert."""


class WiringError(AlertError):
    """A command queue lost all of its producers."""
