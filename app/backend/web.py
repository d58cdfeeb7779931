import logging
import os
from typing import List, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .constants import MAX_REQUEST_BYTES
from .errors import GenerationError, PitchCoachError, QuotaError
from .media import read_upload
from .models import (
    BusyStatus,
    CollectResponse,
    CommunityPitch,
    CustomField,
    CustomFieldUpdateRequest,
    DurationRequest,
    Evaluation,
    FieldInputRequest,
    IdentityResponse,
    LoginResponse,
    ManualScoreRequest,
    NewRecordRequest,
    Pitch,
    PitchRecord,
    ProfileFieldRequest,
    RecordFieldRequest,
    RecordType,
    ReorderFieldsRequest,
    Scores,
    SelectTemplateRequest,
    Template,
    TemplateDefinition,
    TemplateField,
    TemplateNameRequest,
    TextRequest,
    UserProfile,
    WorkflowView,
)
from .session import build_session
from .templates import new_template, reorder_fields


logger = logging.getLogger("uvicorn.error")

app = FastAPI(title="Pitch Coach Backend")
session = build_session()

frontend_origins = os.getenv(
    "FRONTEND_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in frontend_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def enforce_request_size(request, call_next):
    if request.method in ("POST", "PUT", "PATCH"):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                if int(content_length) > MAX_REQUEST_BYTES:
                    return JSONResponse(
                        status_code=413,
                        content={
                            "detail": f"Request too large. Max size is {MAX_REQUEST_BYTES} bytes.",
                            "error": "request_too_large",
                        },
                    )
            except ValueError:
                pass
    return await call_next(request)


@app.exception_handler(PitchCoachError)
async def pitch_coach_error_handler(request: Request, exc: PitchCoachError):
    content = {"detail": exc.message, "error": exc.code}
    if isinstance(exc, QuotaError):
        content["loginRequired"] = True
        content["limit"] = exc.limit
    if isinstance(exc, GenerationError) and exc.reason:
        content["reason"] = exc.reason
    logger.info(
        "request_failed method=%s path=%s status=%s error=%s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.code,
    )
    return JSONResponse(status_code=exc.status_code, content=content)


@app.get("/health")
def health() -> dict:
    return {
        "status": "ok",
        "storage": getattr(session.store, "storage_name", "unknown"),
        "generation": getattr(session.generation, "provider_name", "unknown"),
        "busy": session.guard.busy,
    }


@app.get("/api/busy", response_model=BusyStatus)
def busy_status() -> BusyStatus:
    return BusyStatus(busy=session.guard.busy, label=session.guard.label)


# Templates


@app.get("/api/templates", response_model=List[Template])
def list_templates() -> List[Template]:
    return session.templates.list()


@app.get("/api/templates/new", response_model=Template)
def template_shell() -> Template:
    return new_template()


@app.post("/api/templates/suggest", response_model=List[TemplateField])
def suggest_template_fields(payload: TemplateNameRequest) -> List[TemplateField]:
    return session.templates.suggest_fields(payload.name)


@app.post("/api/templates/reorder", response_model=List[TemplateField])
def reorder_template_fields(payload: ReorderFieldsRequest) -> List[TemplateField]:
    return reorder_fields(payload.fields, payload.from_index, payload.to_index)


@app.get("/api/templates/{template_id}", response_model=Template)
def get_template(template_id: str) -> Template:
    return session.templates.get(template_id)


@app.post("/api/templates", response_model=Template)
def create_template(payload: TemplateDefinition) -> Template:
    return session.templates.create(payload)


@app.put("/api/templates/{template_id}", response_model=Template)
def update_template(template_id: str, payload: TemplateDefinition) -> Template:
    return session.workflow.update_template(template_id, payload)


@app.delete("/api/templates/{template_id}", response_model=WorkflowView)
def delete_template(template_id: str) -> WorkflowView:
    session.workflow.delete_template(template_id)
    return session.workflow.view()


# Workflow


@app.get("/api/workflow", response_model=WorkflowView)
def get_workflow() -> WorkflowView:
    return session.workflow.view()


@app.post("/api/workflow/template", response_model=WorkflowView)
def select_template(payload: SelectTemplateRequest) -> WorkflowView:
    session.workflow.select_template(payload.template_id)
    return session.workflow.view()


@app.post("/api/workflow/duration", response_model=WorkflowView)
def set_duration(payload: DurationRequest) -> WorkflowView:
    session.workflow.set_duration(payload.selection, payload.custom)
    return session.workflow.view()


@app.put("/api/workflow/fields", response_model=WorkflowView)
def set_field(payload: FieldInputRequest) -> WorkflowView:
    session.workflow.set_field(payload.label, payload.value)
    return session.workflow.view()


@app.put("/api/workflow/topic", response_model=WorkflowView)
def set_topic(payload: TextRequest) -> WorkflowView:
    session.workflow.set_topic(payload.value)
    return session.workflow.view()


@app.put("/api/workflow/practiced", response_model=WorkflowView)
def set_practiced(payload: TextRequest) -> WorkflowView:
    session.workflow.set_practiced(payload.value)
    return session.workflow.view()


@app.post("/api/workflow/generate", response_model=WorkflowView)
def generate_pitch() -> WorkflowView:
    session.workflow.generate()
    return session.workflow.view()


@app.post("/api/workflow/feedback", response_model=WorkflowView)
def get_feedback() -> WorkflowView:
    session.workflow.get_feedback()
    return session.workflow.view()


@app.post("/api/workflow/save", response_model=Pitch)
def save_pitch() -> Pitch:
    return session.workflow.save()


@app.post("/api/workflow/reset", response_model=WorkflowView)
def reset_workflow() -> WorkflowView:
    session.workflow.reset()
    return session.workflow.view()


# Saved pitches


@app.get("/api/pitches", response_model=List[Pitch])
def list_pitches() -> List[Pitch]:
    return session.workflow.list_pitches()


@app.get("/api/pitches/{pitch_id}", response_model=Pitch)
def get_pitch(pitch_id: int) -> Pitch:
    return session.workflow.get_pitch(pitch_id)


@app.post("/api/pitches/{pitch_id}/load", response_model=WorkflowView)
def load_pitch(pitch_id: int) -> WorkflowView:
    session.workflow.load(pitch_id)
    return session.workflow.view()


@app.delete("/api/pitches/{pitch_id}")
def delete_pitch(pitch_id: int) -> dict:
    session.workflow.delete_pitch(pitch_id)
    return {"deleted": pitch_id}


# Capability flag


@app.post("/api/auth/login", response_model=LoginResponse)
def login() -> LoginResponse:
    result = session.workflow.login()
    return LoginResponse(
        logged_in=result.logged_in,
        saved_pitch=result.saved_pitch,
        retry_error=result.retry_error,
    )


@app.post("/api/auth/logout", response_model=LoginResponse)
def logout() -> LoginResponse:
    session.workflow.logout()
    return LoginResponse(logged_in=False)


# Sharing and community


@app.post("/api/share", response_model=CommunityPitch)
def initiate_share() -> CommunityPitch:
    return session.sharing.initiate()


@app.get("/api/share", response_model=Optional[CommunityPitch])
def share_candidate() -> Optional[CommunityPitch]:
    return session.sharing.candidate


@app.post("/api/share/confirm", response_model=CommunityPitch)
def confirm_share() -> CommunityPitch:
    return session.sharing.confirm()


@app.delete("/api/share")
def cancel_share() -> dict:
    session.sharing.cancel()
    return {"cancelled": True}


@app.get("/api/community", response_model=List[CommunityPitch])
def list_community() -> List[CommunityPitch]:
    return session.community.list()


@app.get("/api/community/collections", response_model=List[CommunityPitch])
def collected_pitches() -> List[CommunityPitch]:
    return session.community.collected()


@app.get("/api/community/{pitch_id}", response_model=CommunityPitch)
def get_community_pitch(pitch_id: int) -> CommunityPitch:
    return session.community.get(pitch_id)


@app.post("/api/community/{pitch_id}/collect", response_model=CollectResponse)
def toggle_collection(pitch_id: int) -> CollectResponse:
    collected = session.community.toggle_collection(pitch_id)
    return CollectResponse(id=pitch_id, collected=collected)


# Practice records


@app.get("/api/records", response_model=List[PitchRecord])
def list_records(type: Optional[RecordType] = None) -> List[PitchRecord]:
    return session.records.list(type)


@app.post("/api/records", response_model=PitchRecord)
def new_record(payload: NewRecordRequest) -> PitchRecord:
    return session.records.new_record(payload.type)


@app.get("/api/records/current", response_model=Optional[PitchRecord])
def current_record() -> Optional[PitchRecord]:
    return session.records.current


@app.patch("/api/records/current", response_model=PitchRecord)
def update_record(payload: RecordFieldRequest) -> PitchRecord:
    return session.records.update(payload.field, payload.value)


@app.post("/api/records/current/close", response_model=Optional[PitchRecord])
def close_record() -> Optional[PitchRecord]:
    return session.records.close()


@app.post("/api/records/current/audio", response_model=PitchRecord)
async def attach_record_audio(audio: UploadFile = File(...)) -> PitchRecord:
    data = await read_upload(audio, field_name="audio")
    return session.records.attach_audio(data, audio.content_type)


@app.post("/api/records/current/photo", response_model=PitchRecord)
async def attach_record_photo(photo: UploadFile = File(...)) -> PitchRecord:
    data = await read_upload(photo, field_name="photo")
    return session.records.attach_photo(data, photo.content_type)


@app.post("/api/records/current/transcribe", response_model=PitchRecord)
def transcribe_record() -> PitchRecord:
    session.records.transcribe()
    return session.records.current


@app.post("/api/records/current/evaluate", response_model=Evaluation)
def evaluate_record() -> Evaluation:
    return session.records.evaluate()


@app.put("/api/records/current/scores", response_model=Scores)
def set_manual_score(payload: ManualScoreRequest) -> Scores:
    return session.records.set_manual_score(payload.dimension, payload.value)


@app.post("/api/records/{record_id}/open", response_model=PitchRecord)
def open_record(record_id: int) -> PitchRecord:
    return session.records.open(record_id)


@app.delete("/api/records/{record_id}")
def delete_record(record_id: int) -> dict:
    session.records.delete(record_id)
    return {"deleted": record_id}


# Profile


@app.get("/api/profile", response_model=UserProfile)
def get_profile() -> UserProfile:
    return session.profile.get()


@app.patch("/api/profile", response_model=UserProfile)
def update_profile(payload: ProfileFieldRequest) -> UserProfile:
    return session.profile.update(payload.field, payload.value)


@app.post("/api/profile/custom-fields", response_model=CustomField)
def add_custom_field() -> CustomField:
    return session.profile.add_custom_field()


@app.patch("/api/profile/custom-fields/{field_id}", response_model=CustomField)
def update_custom_field(field_id: str, payload: CustomFieldUpdateRequest) -> CustomField:
    return session.profile.update_custom_field(field_id, payload.key, payload.text)


@app.delete("/api/profile/custom-fields/{field_id}", response_model=UserProfile)
def delete_custom_field(field_id: str) -> UserProfile:
    session.profile.delete_custom_field(field_id)
    return session.profile.get()


@app.get("/api/profile/identity", response_model=IdentityResponse)
def profile_identity() -> IdentityResponse:
    return IdentityResponse(
        user_id=session.profile.user_id(),
        profile_link=session.profile.profile_link(),
        qr_code_url=session.profile.qr_code_url(),
    )
