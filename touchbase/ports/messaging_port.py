"""Messaging port — abstract interface for talking to the user.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class MessagingError(Exception):
    """Raised when a messaging provider operation fails."""


@dataclass(frozen=True)
class Control:
    """An interactive button: visible label plus the opaque payload it sends back."""

    label: str
    payload: str


class MessagingPort(Protocol):
    """Abstract messaging interface used by core modules."""

    async def send_message(
        self,
        destination: int | str,
        text: str,
        controls: list[Control] | None = None,
        markdown: bool = False,
    ) -> None: ...

    async def ack_control(self, callback_id: str, text: str = "") -> None: ...
