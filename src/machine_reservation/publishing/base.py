# Copyright 2026 Seth Bang
# SPDX-License-Identifier: Apache-2.0
"""Protocol and channel names for pushing state to subscribers."""

from typing import Any, Protocol, runtime_checkable

MACHINES_CHANNEL = "machines"
"""Full machine and queue snapshots."""

NOTIFICATIONS_CHANNEL = "notifications"
"""One-shot pre-start warnings."""

WASH_HISTORY_CHANNEL = "wash_history"
"""Users whose reservation has completed since the last reset."""

CHANNELS = (MACHINES_CHANNEL, NOTIFICATIONS_CHANNEL, WASH_HISTORY_CHANNEL)


@runtime_checkable
class PublisherProtocol(Protocol):
    """
    Minimal protocol for delivering payloads to subscribers.

    Delivery is fire-and-forget from the scheduler's point of view: the
    scheduler logs and counts publish failures but never retries them.
    Payloads are JSON-compatible values.

    Example:
        >>> class PrintPublisher:
        ...     async def publish(self, channel, payload):
        ...         print(channel, payload)
        >>>
        >>> isinstance(PrintPublisher(), PublisherProtocol)
        True
    """

    async def publish(self, channel: str, payload: Any) -> None:
        """Deliver ``payload`` to the current subscribers of ``channel``."""
        ...


__all__ = [
    "CHANNELS",
    "MACHINES_CHANNEL",
    "NOTIFICATIONS_CHANNEL",
    "WASH_HISTORY_CHANNEL",
    "PublisherProtocol",
]
