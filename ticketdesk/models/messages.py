"""
Structured messages and interactive controls

The core decides what to communicate using these models; `to_payload()`
renders them into Discord's message / component JSON.
"""
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Union, Literal

from pydantic import BaseModel, Field


class Color(int, Enum):
    """Embed colors"""
    GREEN = 0x57F287
    RED = 0xED4245
    BLUE = 0x3498DB
    ORANGE = 0xE67E22
    GREY = 0x95A5A6


class ButtonStyle(int, Enum):
    PRIMARY = 1
    SECONDARY = 2
    SUCCESS = 3
    DANGER = 4


class MessageField(BaseModel):
    name: str
    value: str
    inline: bool = True


class Button(BaseModel):
    kind: Literal["button"] = "button"
    custom_id: str
    label: str
    style: ButtonStyle = ButtonStyle.PRIMARY
    emoji: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": 2,
            "custom_id": self.custom_id,
            "label": self.label,
            "style": self.style.value,
        }
        if self.emoji:
            payload["emoji"] = {"name": self.emoji}
        return payload


class SelectOption(BaseModel):
    label: str = Field(..., max_length=100)
    value: str
    description: Optional[str] = Field(None, max_length=100)
    emoji: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"label": self.label, "value": self.value}
        if self.description:
            payload["description"] = self.description
        if self.emoji:
            payload["emoji"] = {"name": self.emoji}
        return payload


class SelectMenu(BaseModel):
    kind: Literal["select"] = "select"
    custom_id: str
    placeholder: Optional[str] = None
    options: List[SelectOption] = Field(default_factory=list, max_length=25)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": 3,
            "custom_id": self.custom_id,
            "options": [option.to_payload() for option in self.options],
        }
        if self.placeholder:
            payload["placeholder"] = self.placeholder
        return payload


Control = Union[Button, SelectMenu]


class StructuredMessage(BaseModel):
    """
    A message card: optional plain content, one embed, and a row of controls.

    An empty `components` list on an edit clears the existing controls;
    `components=None` leaves them untouched.
    """
    content: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    color: Optional[Color] = None
    fields: List[MessageField] = Field(default_factory=list)
    footer: Optional[str] = None
    timestamp: Optional[datetime] = None
    components: Optional[List[Control]] = None

    def has_embed(self) -> bool:
        return any([self.title, self.description, self.fields, self.footer])

    def embed_payload(self) -> Dict[str, Any]:
        embed: Dict[str, Any] = {}
        if self.title:
            embed["title"] = self.title
        if self.description:
            embed["description"] = self.description
        if self.color is not None:
            embed["color"] = self.color.value
        if self.fields:
            embed["fields"] = [field.model_dump() for field in self.fields]
        if self.footer:
            embed["footer"] = {"text": self.footer}
        if self.timestamp:
            embed["timestamp"] = self.timestamp.isoformat()
        return embed

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.content is not None:
            payload["content"] = self.content
        if self.has_embed():
            payload["embeds"] = [self.embed_payload()]
        if self.components is not None:
            # Buttons share one action row; a select menu needs a row to itself.
            rows: List[Dict[str, Any]] = []
            buttons = [c.to_payload() for c in self.components if isinstance(c, Button)]
            if buttons:
                rows.append({"type": 1, "components": buttons})
            for control in self.components:
                if isinstance(control, SelectMenu):
                    rows.append({"type": 1, "components": [control.to_payload()]})
            payload["components"] = rows
        return payload


class TextInput(BaseModel):
    custom_id: str
    label: str = Field(..., max_length=45)
    placeholder: Optional[str] = None
    required: bool = False
    paragraph: bool = True

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": 4,
            "custom_id": self.custom_id,
            "label": self.label,
            "style": 2 if self.paragraph else 1,
            "required": self.required,
        }
        if self.placeholder:
            payload["placeholder"] = self.placeholder
        return payload


class Modal(BaseModel):
    custom_id: str
    title: str = Field(..., max_length=45)
    inputs: List[TextInput] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "custom_id": self.custom_id,
            "title": self.title,
            "components": [
                {"type": 1, "components": [text_input.to_payload()]}
                for text_input in self.inputs
            ],
        }
