"""Alert routing: dedup, logging and paging."""

from watchtower.alerts.channels import (
    NullTransport,
    PagerDutyTransport,
    PagingTransport,
    create_transport,
)
from watchtower.alerts.exceptions import AlertError, PagingError, WiringError
from watchtower.alerts.router import AlertRouter, AlertSender, terminate_process

__all__ = [
    "AlertError",
    "AlertRouter",
    "AlertSender",
    "NullTransport",
    "PagerDutyTransport",
    "PagingError",
    "PagingTransport",
    "WiringError",
    "create_transport",
    "terminate_process",
]
