"""Outbound messages from the controller to frames, and the messenger seam."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import structlog
from pydantic import AwareDatetime, BaseModel

logger = structlog.get_logger(category="messenger")


class FrameStatus(str, Enum):
    UNTRACKED = "untracked"
    ALLOWED = "allowed"
    BLOCKED = "blocked"


class FrameStatusMessage(BaseModel):
    """Access decision for one (tab, frame) pair, with hints for when to check again."""

    status: FrameStatus
    window_check: AwareDatetime | None = None
    viewtime_check: AwareDatetime | None = None


class PolicyRecord(BaseModel):
    id: str
    policy: dict[str, Any]


class PoliciesMessage(BaseModel):
    policies: list[PolicyRecord]


OutboundMessage = FrameStatusMessage | PoliciesMessage


class Messenger(Protocol):
    def send(self, tab_id: int, frame_id: int, message: OutboundMessage) -> None: ...

    def broadcast(self, message: OutboundMessage) -> None: ...


@dataclass(frozen=True)
class Delivery:
    """One outbound message; ``tab_id``/``frame_id`` are None for broadcasts."""

    message: OutboundMessage
    tab_id: int | None = None
    frame_id: int | None = None

    @property
    def is_broadcast(self) -> bool:
        return self.tab_id is None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"message": self.message.model_dump(mode="json", exclude_none=True)}
        if not self.is_broadcast:
            payload["tab_id"] = self.tab_id
            payload["frame_id"] = self.frame_id
        return payload


@dataclass
class MemoryMessenger:
    """Messenger that records every delivery in order."""

    outbox: list[Delivery] = field(default_factory=list)

    def send(self, tab_id: int, frame_id: int, message: OutboundMessage) -> None:
        logger.debug("Sending frame message", tab_id=tab_id, frame_id=frame_id, kind=type(message).__name__)
        self.outbox.append(Delivery(message=message, tab_id=tab_id, frame_id=frame_id))

    def broadcast(self, message: OutboundMessage) -> None:
        logger.debug("Broadcasting message", kind=type(message).__name__)
        self.outbox.append(Delivery(message=message))

    def sent_to(self, tab_id: int, frame_id: int) -> list[OutboundMessage]:
        return [d.message for d in self.outbox if d.tab_id == tab_id and d.frame_id == frame_id]

    def last_status(self, tab_id: int, frame_id: int) -> FrameStatusMessage | None:
        for delivery in reversed(self.outbox):
            if (
                delivery.tab_id == tab_id
                and delivery.frame_id == frame_id
                and isinstance(delivery.message, FrameStatusMessage)
            ):
                return delivery.message
        return None

    def broadcasts(self) -> list[OutboundMessage]:
        return [d.message for d in self.outbox if d.is_broadcast]

    def drain(self) -> list[Delivery]:
        drained = list(self.outbox)
        self.outbox.clear()
        return drained
