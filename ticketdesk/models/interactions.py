"""
Inbound interactions and interaction replies

Discord delivers a single interaction object that may be a button click,
a select-menu choice or a modal submission. It is parsed here into one
explicit variant, discriminated by `kind`, so the router can dispatch each
variant to exactly one core entry point.
"""
from enum import IntEnum
from typing import Optional, List, Dict, Any, Union, Literal, Annotated

from pydantic import BaseModel, Field

from ticketdesk.models.messages import StructuredMessage, Modal
from ticketdesk.models.schemas import Principal


class InteractionType(IntEnum):
    PING = 1
    APPLICATION_COMMAND = 2
    MESSAGE_COMPONENT = 3
    AUTOCOMPLETE = 4
    MODAL_SUBMIT = 5


class ComponentType(IntEnum):
    ACTION_ROW = 1
    BUTTON = 2
    STRING_SELECT = 3
    TEXT_INPUT = 4


EPHEMERAL_FLAG = 1 << 6


class InteractionBase(BaseModel):
    id: str
    token: str = ""
    guild_id: str
    channel_id: str
    custom_id: str
    principal: Principal
    message_id: Optional[str] = None


class ButtonPress(InteractionBase):
    kind: Literal["button"] = "button"


class MenuSelection(InteractionBase):
    kind: Literal["select"] = "select"
    values: List[str] = Field(default_factory=list)


class ModalSubmission(InteractionBase):
    kind: Literal["modal"] = "modal"
    inputs: Dict[str, str] = Field(default_factory=dict)


Interaction = Annotated[
    Union[ButtonPress, MenuSelection, ModalSubmission],
    Field(discriminator="kind")
]


class UnsupportedInteraction(ValueError):
    """Raised for interaction payloads the ticket router does not handle"""


def _principal_from_payload(payload: Dict[str, Any]) -> Principal:
    member = payload.get("member") or {}
    user = member.get("user") or payload.get("user") or {}
    return Principal(
        id=str(user.get("id", "")),
        username=user.get("global_name") or user.get("username"),
        role_ids=[str(role) for role in member.get("roles", [])],
        permissions=member.get("permissions") or 0,
    )


def _modal_inputs(data: Dict[str, Any]) -> Dict[str, str]:
    inputs: Dict[str, str] = {}
    for row in data.get("components", []):
        for component in row.get("components", []):
            if component.get("type") == ComponentType.TEXT_INPUT:
                inputs[component["custom_id"]] = component.get("value") or ""
    return inputs


def parse_interaction(payload: Dict[str, Any]) -> Union[ButtonPress, MenuSelection, ModalSubmission]:
    """
    Convert a raw Discord interaction payload into its variant.

    Args:
        payload: Interaction JSON as received from Discord

    Returns:
        ButtonPress, MenuSelection or ModalSubmission

    Raises:
        UnsupportedInteraction: For DMs, commands, and unknown component types
    """
    interaction_type = payload.get("type")
    data = payload.get("data") or {}

    if not payload.get("guild_id"):
        raise UnsupportedInteraction("Ticket interactions are only supported inside a server")

    common = {
        "id": str(payload.get("id", "")),
        "token": payload.get("token", ""),
        "guild_id": str(payload["guild_id"]),
        "channel_id": str(payload.get("channel_id") or (payload.get("channel") or {}).get("id", "")),
        "custom_id": data.get("custom_id", ""),
        "principal": _principal_from_payload(payload),
        "message_id": (payload.get("message") or {}).get("id"),
    }

    if interaction_type == InteractionType.MESSAGE_COMPONENT:
        component_type = data.get("component_type")
        if component_type == ComponentType.BUTTON:
            return ButtonPress(**common)
        if component_type == ComponentType.STRING_SELECT:
            return MenuSelection(**common, values=[str(v) for v in data.get("values", [])])
        raise UnsupportedInteraction(f"Unsupported component type: {component_type}")

    if interaction_type == InteractionType.MODAL_SUBMIT:
        return ModalSubmission(**common, inputs=_modal_inputs(data))

    raise UnsupportedInteraction(f"Unsupported interaction type: {interaction_type}")


class InteractionReply(BaseModel):
    """
    Response to an interaction.

    kinds:
        pong: answer to a ping
        message: new message (optionally ephemeral)
        update: edit the message the component belongs to
        deferred_update: acknowledge without changing anything
        modal: open a modal dialog
    """
    kind: Literal["pong", "message", "update", "deferred_update", "modal"]
    message: Optional[StructuredMessage] = None
    ephemeral: bool = False
    modal: Optional[Modal] = None

    @classmethod
    def pong(cls) -> "InteractionReply":
        return cls(kind="pong")

    @classmethod
    def reply(cls, message: StructuredMessage, ephemeral: bool = False) -> "InteractionReply":
        return cls(kind="message", message=message, ephemeral=ephemeral)

    @classmethod
    def update(cls, message: StructuredMessage) -> "InteractionReply":
        return cls(kind="update", message=message)

    @classmethod
    def acknowledge(cls) -> "InteractionReply":
        return cls(kind="deferred_update")

    @classmethod
    def show_modal(cls, modal: Modal) -> "InteractionReply":
        return cls(kind="modal", modal=modal)

    def to_payload(self) -> Dict[str, Any]:
        if self.kind == "pong":
            return {"type": 1}
        if self.kind == "deferred_update":
            return {"type": 6}
        if self.kind == "modal":
            return {"type": 9, "data": self.modal.to_payload()}

        data = self.message.to_payload() if self.message else {}
        if self.kind == "update":
            return {"type": 7, "data": data}

        if self.ephemeral:
            data["flags"] = EPHEMERAL_FLAG
        return {"type": 4, "data": data}
