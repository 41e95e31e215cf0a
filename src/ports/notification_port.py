"""Notification port — abstract interface for delivering messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol

# (label, callback data) pairs rendered as a single row of inline buttons
Buttons = list[tuple[str, str]]


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(
        self, user_id: int, text: str, buttons: Buttons | None = None,
    ) -> int:
        """Deliver ``text`` and return a handle usable for retraction."""
        ...

    async def delete_message(self, user_id: int, message_id: int) -> None:
        """Retract a previously delivered message."""
        ...
