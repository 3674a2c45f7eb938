"""Shared data models for the API layer.

Wire-facing types (messages, content blocks, tool descriptors) are frozen
pydantic models so a conversation snapshot can be handed out without
copying. Outcome types (results, command output) are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Annotated, Any, Generic, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from termagent.errors import TermAgentError

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    error: TermAgentError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return str(self.error)


Result = Union[Success[T], Failure]


# ---------------------------------------------------------------------------
# Content blocks and messages
# ---------------------------------------------------------------------------


class TextBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool call requested by the model. id/name may be missing on bad responses."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool_use"] = "tool_use"
    id: str | None = None
    name: str | None = None
    input: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_well_formed(self) -> bool:
        return bool(self.id) and bool(self.name)


class ToolResultBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """A single message in a conversation: plain text or an ordered block list."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str | tuple[ContentBlock, ...]

    @property
    def blocks(self) -> tuple[TextBlock | ToolUseBlock | ToolResultBlock, ...]:
        if isinstance(self.content, str):
            return (TextBlock(text=self.content),)
        return self.content

    def to_wire(self) -> dict[str, Any]:
        """Anthropic Messages API shape."""
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {
            "role": self.role,
            "content": [block.model_dump(mode="json") for block in self.content],
        }


# ---------------------------------------------------------------------------
# Tool descriptors
# ---------------------------------------------------------------------------


class ToolProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    description: str
    enum: tuple[str, ...] | None = None


class InputSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    properties: dict[str, ToolProperty]
    required: frozenset[str] = frozenset()


class ToolDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: InputSchema

    def to_wire(self) -> dict[str, Any]:
        properties = {
            name: prop.model_dump(mode="json", exclude_none=True)
            for name, prop in self.input_schema.properties.items()
        }
        # Keep declaration order so the schema reads the same every call
        required = [name for name in self.input_schema.properties if name in self.input_schema.required]
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass
class ApiResponse:
    """Parsed response from Anthropic Messages API."""

    content: list[TextBlock | ToolUseBlock]
    stop_reason: str  # end_turn, tool_use, max_tokens, stop_sequence, ...
    id: str = ""
    role: str = "assistant"
    usage: dict[str, int] | None = None


@dataclass(frozen=True)
class ToolSuccess:
    output: str
    metadata: dict[str, Any] = field(default_factory=dict)

    is_error = False

    @property
    def text(self) -> str:
        return self.output


@dataclass(frozen=True)
class ToolError:
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    is_error = True

    @property
    def text(self) -> str:
        return self.message

    @classmethod
    def from_exception(cls, exc: TermAgentError, **details: Any) -> ToolError:
        return cls(message=str(exc), details={"error": type(exc).__name__, **details})


ToolResult = Union[ToolSuccess, ToolError]


@dataclass(frozen=True)
class CommandResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {"stdout": self.stdout, "stderr": self.stderr, "exit_code": self.exit_code}
