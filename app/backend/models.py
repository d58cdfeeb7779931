import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .constants import DEFAULT_DURATION_SELECTION, DEFAULT_TEMPLATE_ID


DEFAULT_AVATAR = (
    "data:image/svg+xml,%3Csvg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 100 100'%3E"
    "%3Crect width='100' height='100' fill='%23CDB380'/%3E%3Ctext x='50%25' y='50%25' "
    "dominant-baseline='central' text-anchor='middle' font-size='45' font-family='Lora, serif' "
    "fill='%23031634'%3EPF%3C/text%3E%3C/svg%3E"
)

SCORE_DIMENSIONS = (
    "audience_engagement",
    "fluency",
    "body_language",
    "structure",
    "time_management",
)

RecordType = Literal["self", "other"]


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Stored and wire documents use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class TemplateField(CamelModel):
    id: str
    label: str


class Template(CamelModel):
    id: str
    name: str
    is_builtin: bool = False
    fields: List[TemplateField]

    def labels(self) -> List[str]:
        return [item.label for item in self.fields]


class Source(CamelModel):
    title: str = ""
    uri: str


class Pitch(CamelModel):
    id: int
    title: str
    generated_pitch: str = ""
    practiced_pitch: str = ""
    feedback: str = ""
    sources: List[Source] = Field(default_factory=list)
    template_name: Optional[str] = None


class CommunityPitch(Pitch):
    summary: str
    image_url: str


class Scores(CamelModel):
    audience_engagement: int = Field(3, ge=1, le=5)
    fluency: int = Field(3, ge=1, le=5)
    body_language: int = Field(3, ge=1, le=5)
    structure: int = Field(3, ge=1, le=5)
    time_management: int = Field(3, ge=1, le=5)


class PitchRecord(CamelModel):
    id: int
    type: RecordType
    date: int
    topic: str = ""
    speaker: str = ""
    audio_url: Optional[str] = None
    audio_base64: Optional[str] = None
    photo_url: Optional[str] = None
    transcription: str = ""
    ai_scores: Scores = Field(default_factory=Scores)
    manual_scores: Scores = Field(default_factory=Scores)
    ai_feedback: str = ""
    notes: str = ""


class CustomField(CamelModel):
    id: str
    label: str
    value: str = ""


class UserProfile(CamelModel):
    avatar: str = DEFAULT_AVATAR
    unit: str = ""
    title: str = ""
    experience: str = ""
    interests: str = ""
    email: str = ""
    custom_fields: List[CustomField] = Field(default_factory=list)


# Structured generation payloads.


class EligibilityVerdict(BaseModel):
    shareable: bool
    reason: str


class ShareArtifact(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    image_prompt: str = Field(alias="imagePrompt", min_length=1)


class EvaluationScores(CamelModel):
    audience_engagement: int = Field(ge=1, le=5)
    fluency: int = Field(ge=1, le=5)
    body_language: int = Field(ge=1, le=5)
    structure: int = Field(ge=1, le=5)
    time_management: int = Field(ge=1, le=5)


class Evaluation(BaseModel):
    scores: EvaluationScores
    feedback: str


class FieldSuggestion(BaseModel):
    fields: List[str]


# Session working state.


class WorkflowStep(IntEnum):
    INPUT = 1
    DRAFTED = 2
    REVIEWED = 3


@dataclass
class SessionState:
    step: WorkflowStep = WorkflowStep.INPUT
    selected_template_id: str = DEFAULT_TEMPLATE_ID
    duration_selection: str = DEFAULT_DURATION_SELECTION
    custom_duration: str = ""
    pitch_input: Dict[str, str] = field(default_factory=dict)
    word_budget: Dict[str, int] = field(default_factory=dict)
    search_topic: str = ""
    generated_pitch: str = ""
    practiced_pitch: str = ""
    feedback: str = ""
    sources: List[Source] = field(default_factory=list)
    locked_template_name: str = ""
    pending_save: bool = False
    share_candidate: Optional[CommunityPitch] = None
    editing_record: Optional[PitchRecord] = None


# HTTP request / response bodies.


class TemplateDefinition(CamelModel):
    name: str
    fields: List[TemplateField]


class TemplateNameRequest(CamelModel):
    name: str


class ReorderFieldsRequest(CamelModel):
    fields: List[TemplateField]
    from_index: int
    to_index: int


class SelectTemplateRequest(CamelModel):
    template_id: str


class DurationRequest(CamelModel):
    selection: str
    custom: str = ""


class FieldInputRequest(CamelModel):
    label: str
    value: str


class TextRequest(CamelModel):
    value: str


class NewRecordRequest(CamelModel):
    type: RecordType


class RecordFieldRequest(CamelModel):
    field: str
    value: object = None


class ManualScoreRequest(CamelModel):
    dimension: str
    value: int


class ProfileFieldRequest(CamelModel):
    field: str
    value: str


class CustomFieldUpdateRequest(CamelModel):
    key: Literal["label", "value"]
    text: str


class BusyStatus(CamelModel):
    busy: bool
    label: str = ""


class WorkflowView(CamelModel):
    step: int
    selected_template_id: str
    duration_selection: str
    custom_duration: str
    total_seconds: int
    pitch_input: Dict[str, str]
    word_budget: Dict[str, int]
    search_topic: str
    generated_pitch: str
    practiced_pitch: str
    feedback: str
    sources: List[Source]
    template_name: str
    pending_save: bool
    logged_in: bool
    busy: BusyStatus


class LoginResponse(CamelModel):
    logged_in: bool
    saved_pitch: Optional[Pitch] = None
    retry_error: Optional[str] = None


class CollectResponse(CamelModel):
    id: int
    collected: bool


class IdentityResponse(CamelModel):
    user_id: str
    profile_link: str
    qr_code_url: str
