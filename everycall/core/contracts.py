"""
Request/response contracts for the decision and synthesis services.

Pydantic v2 models. ``NextAction`` is a closed discriminated union on
``type``; consumers dispatch on the concrete class.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

NonEmptyStr = Annotated[str, Field(min_length=1)]
UnitFloat = Annotated[float, Field(ge=0.0, le=1.0)]


# Turn decision -----------------------------------------------------------------

class CallerInput(BaseModel):
    type: Literal["text", "audio_text"]
    text: NonEmptyStr


class BusinessProfile(BaseModel):
    # Tenants may attach arbitrary extra profile fields
    model_config = ConfigDict(extra="allow")

    name: NonEmptyStr
    timezone: NonEmptyStr


class FaqItem(BaseModel):
    q: NonEmptyStr
    a: NonEmptyStr


class TurnContext(BaseModel):
    from_number: NonEmptyStr
    to_number: NonEmptyStr
    business_profile: BusinessProfile
    faq_items: List[FaqItem] = Field(default_factory=list)


class TurnRequest(BaseModel):
    trace_id: NonEmptyStr
    tenant_id: NonEmptyStr
    call_id: NonEmptyStr
    turn_id: NonEmptyStr
    caller_input: CallerInput
    context: TurnContext


class SpeakAction(BaseModel):
    type: Literal["speak"] = "speak"
    text: NonEmptyStr


class ToolCallAction(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    tool_name: NonEmptyStr
    tool_args: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: NonEmptyStr


class HandoffAction(BaseModel):
    type: Literal["handoff"] = "handoff"
    reason: NonEmptyStr


class EndCallAction(BaseModel):
    type: Literal["end_call"] = "end_call"
    reason: NonEmptyStr


NextAction = Annotated[
    Union[SpeakAction, ToolCallAction, HandoffAction, EndCallAction],
    Field(discriminator="type"),
]

next_action_adapter: TypeAdapter = TypeAdapter(NextAction)


class Extracted(BaseModel):
    intent: str = "general_inquiry"
    urgency: str = "normal"
    entities: Dict[str, Any] = Field(default_factory=dict)


class TurnResponse(BaseModel):
    trace_id: str
    tenant_id: str
    call_id: str
    turn_id: str
    next_action: NextAction
    extracted: Extracted


# Speech synthesis ----------------------------------------------------------------

class VoiceParams(BaseModel):
    voice_id: Optional[NonEmptyStr] = None
    stability: Optional[UnitFloat] = None
    similarity_boost: Optional[UnitFloat] = None
    style: Optional[UnitFloat] = None


class AudioParams(BaseModel):
    format: Literal["mulaw", "mp3", "pcm16"]
    sample_rate_hz: Annotated[int, Field(gt=0)]


class SynthesisRequest(BaseModel):
    trace_id: NonEmptyStr
    tenant_id: NonEmptyStr
    call_id: NonEmptyStr
    utterance_id: NonEmptyStr
    provider: Literal["elevenlabs", "openai"]
    voice: VoiceParams
    audio: AudioParams
    text: NonEmptyStr
