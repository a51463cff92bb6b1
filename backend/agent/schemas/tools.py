"""Schemas for model-requested tool calls and their results."""

from typing import Any

from pydantic import BaseModel, Field, model_validator


class ToolCall(BaseModel):
    """A single operation requested by the model."""

    id: str = Field(description="Model-assigned identifier used to correlate the result")
    name: str = Field(description="Catalog name of the operation")
    args: dict[str, Any] = Field(
        default_factory=dict,
        description="Arguments keyed by parameter name",
    )


class ToolResult(BaseModel):
    """Outcome of one tool call: a payload or an error descriptor, never both."""

    call_id: str
    name: str
    content: Any = None
    error: dict | None = None

    @model_validator(mode="after")
    def _payload_xor_error(self) -> "ToolResult":
        if self.error is not None and self.content is not None:
            raise ValueError("ToolResult cannot carry both content and an error")
        return self

    @property
    def ok(self) -> bool:
        return self.error is None

    def response(self) -> dict:
        """The response body fed back to the model for this call."""
        return {"name": self.name, "content": self.error if self.error is not None else self.content}
