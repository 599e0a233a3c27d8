"""
Side-effecting tools the decision engine may request.

The core never executes tools; it names them in ``tool_call`` actions for a
downstream executor that deduplicates on the idempotency key. Definitions
are rendered into the completion provider's instructions.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: str  # "string", "integer", "boolean", "number", "array", "object"
    description: str
    required: bool = False
    enum: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "type": self.type,
            "description": self.description,
        }
        if self.enum:
            result["enum"] = self.enum
        return result


@dataclass
class ToolDefinition:
    """Provider-agnostic tool definition."""
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)

    def to_schema(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {p.name: p.to_dict() for p in self.parameters},
                "required": [p.name for p in self.parameters if p.required],
            },
        }


CREATE_LEAD = ToolDefinition(
    name="create_lead",
    description=(
        "Record a service request or appointment lead for the business to follow up on. "
        "Use when the caller wants to book, schedule or request a visit."
    ),
    parameters=[
        ToolParameter(
            name="summary",
            type="string",
            description="One-sentence summary of what the caller needs, in the caller's words.",
            required=True,
        ),
        ToolParameter(
            name="source",
            type="string",
            description="Where the lead came from.",
            enum=["inbound_call"],
        ),
        ToolParameter(
            name="service_address",
            type="string",
            description="Service address if the caller gave one.",
        ),
        ToolParameter(
            name="callback_number",
            type="string",
            description="Best callback number if different from the calling number.",
        ),
    ],
)

AVAILABLE_TOOLS: List[ToolDefinition] = [CREATE_LEAD]


def idempotency_key(call_id: str, turn_id: str, tool_name: str) -> str:
    """Deterministic key: a retried decision for the same turn yields the same key."""
    return f"{call_id}:{turn_id}:{tool_name}"
