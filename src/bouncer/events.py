"""Inbound browse events and frame messages consumed by the controller."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AwareDatetime, BaseModel, Field

from bouncer.errors import UnknownTypeError
from bouncer.matchers import BrowseLocation, FrameContext, PageOwner


class Location(BaseModel):
    """A browsed URL plus the frame it was loaded in."""

    url: str
    context: FrameContext = FrameContext.ROOT
    owner: PageOwner = PageOwner.WEB

    def to_browse_location(self) -> BrowseLocation:
        return BrowseLocation(url=self.url, context=self.context, owner=self.owner)


class NavigateEvent(BaseModel):
    type: Literal["navigate"] = "navigate"
    time: AwareDatetime | None = None
    tab_id: int
    frame_id: int = 0
    location: Location


class TabActivateEvent(BaseModel):
    type: Literal["tab_activate"] = "tab_activate"
    time: AwareDatetime | None = None
    tab_id: int
    prev_tab_id: int | None = None


class TabRemoveEvent(BaseModel):
    type: Literal["tab_remove"] = "tab_remove"
    time: AwareDatetime | None = None
    tab_id: int


class _FrameMessage(BaseModel):
    time: AwareDatetime | None = None
    tab_id: int
    frame_id: int = 0


class StatusMessage(_FrameMessage):
    type: Literal["status"] = "status"


class PoliciesGetMessage(_FrameMessage):
    type: Literal["policies_get"] = "policies_get"


class PolicyCreateMessage(_FrameMessage):
    type: Literal["policy_create"] = "policy_create"
    policy: dict[str, Any] = Field(..., description="Serialized BasicPolicy record")


class PolicyUpdateMessage(_FrameMessage):
    type: Literal["policy_update"] = "policy_update"
    id: str
    policy: dict[str, Any] = Field(..., description="Serialized BasicPolicy record")


class PolicyDeleteMessage(_FrameMessage):
    type: Literal["policy_delete"] = "policy_delete"
    id: str


class PageResetMessage(_FrameMessage):
    type: Literal["page_reset"] = "page_reset"
    id: str


BrowseEvent = NavigateEvent | TabActivateEvent | TabRemoveEvent
FrameMessage = (
    StatusMessage
    | PoliciesGetMessage
    | PolicyCreateMessage
    | PolicyUpdateMessage
    | PolicyDeleteMessage
    | PageResetMessage
)
Event = BrowseEvent | FrameMessage

EVENT_MODELS: dict[str, type[BaseModel]] = {
    "navigate": NavigateEvent,
    "tab_activate": TabActivateEvent,
    "tab_remove": TabRemoveEvent,
    "status": StatusMessage,
    "policies_get": PoliciesGetMessage,
    "policy_create": PolicyCreateMessage,
    "policy_update": PolicyUpdateMessage,
    "policy_delete": PolicyDeleteMessage,
    "page_reset": PageResetMessage,
}


def parse_event(data: dict[str, Any]) -> Event:
    """Validate a raw event record; pydantic ``ValidationError`` propagates for bad fields."""
    tag = data.get("type")
    model = EVENT_MODELS.get(tag) if isinstance(tag, str) else None
    if model is None:
        raise UnknownTypeError("event", tag)
    return model.model_validate(data)  # type: ignore[return-value]
