from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from .busy import BusyGuard
from .constants import (
    CUSTOM_DURATION,
    DEFAULT_TEMPLATE_ID,
    DURATION_PRESETS,
    GUEST_SAVE_LIMIT,
    HISTORY_KEY,
    LOGIN_KEY,
    UNKNOWN_TEMPLATE,
    UNTITLED_PITCH,
)
from .errors import NotFoundError, PitchCoachError, QuotaError, ValidationError
from .llm_client import GenerationService, guarded_call
from .models import (
    BusyStatus,
    Pitch,
    SessionState,
    Template,
    TemplateDefinition,
    WorkflowStep,
    WorkflowView,
    now_ms,
)
from .prompts.drafting import (
    DRAFTING_VERSION,
    build_feedback_prompt,
    build_research_prompt,
    build_template_prompt,
)
from .storage import KeyValueStore
from .templates import TemplateRegistry, default_template
from .word_budget import compute_budget, parse_duration


logger = logging.getLogger("uvicorn.error")


@dataclass
class LoginResult:
    logged_in: bool
    saved_pitch: Optional[Pitch] = None
    retry_error: Optional[str] = None


def _load_pitches(store: KeyValueStore) -> List[Pitch]:
    stored = store.get(HISTORY_KEY)
    if not isinstance(stored, list):
        return []
    pitches: List[Pitch] = []
    for item in stored:
        try:
            pitches.append(Pitch.model_validate(item))
        except SchemaValidationError:
            logger.warning("history_load_skipped_invalid entry=%s", item, exc_info=True)
    return pitches


class PitchWorkflow:
    """Generate -> practice -> feedback state machine for one session.

    Every operation validates first, calls the generation service while
    holding the busy slot, and only then commits to ``state``. A failed call
    leaves the working state exactly as it was.
    """

    def __init__(
        self,
        state: SessionState,
        registry: TemplateRegistry,
        store: KeyValueStore,
        generation: GenerationService,
        guard: BusyGuard,
    ) -> None:
        self.state = state
        self._registry = registry
        self._store = store
        self._generation = generation
        self._guard = guard
        self._pitches: List[Pitch] = _load_pitches(store)
        self._logged_in = bool(store.get(LOGIN_KEY))
        if not self.state.locked_template_name:
            self.state.locked_template_name = self.current_template().name
        self.refresh()

    # -- derived state -------------------------------------------------

    @property
    def logged_in(self) -> bool:
        return self._logged_in

    def current_template(self) -> Template:
        return self._registry.find(self.state.selected_template_id) or default_template()

    def total_seconds(self) -> float:
        return parse_duration(self.state.duration_selection, self.state.custom_duration)

    def refresh(self) -> None:
        template = self.current_template()
        previous = self.state.pitch_input
        self.state.pitch_input = {label: previous.get(label, "") for label in template.labels()}
        self.state.word_budget = compute_budget(template, self.total_seconds())

    def view(self) -> WorkflowView:
        return WorkflowView(
            step=int(self.state.step),
            selected_template_id=self.state.selected_template_id,
            duration_selection=self.state.duration_selection,
            custom_duration=self.state.custom_duration,
            total_seconds=int(self.total_seconds()),
            pitch_input=dict(self.state.pitch_input),
            word_budget=dict(self.state.word_budget),
            search_topic=self.state.search_topic,
            generated_pitch=self.state.generated_pitch,
            practiced_pitch=self.state.practiced_pitch,
            feedback=self.state.feedback,
            sources=list(self.state.sources),
            template_name=self.state.locked_template_name,
            pending_save=self.state.pending_save,
            logged_in=self._logged_in,
            busy=BusyStatus(busy=self._guard.busy, label=self._guard.label),
        )

    # -- input stage ---------------------------------------------------

    def select_template(self, template_id: str) -> None:
        template = self._registry.get(template_id)
        self.state.selected_template_id = template.id
        self.refresh()

    def set_duration(self, selection: str, custom: str = "") -> None:
        selection = str(selection).strip()
        if selection not in DURATION_PRESETS and selection != CUSTOM_DURATION:
            raise ValidationError(f"Unsupported duration selection: {selection}")
        self.state.duration_selection = selection
        self.state.custom_duration = str(custom or "").strip() if selection == CUSTOM_DURATION else ""
        self.refresh()

    def set_field(self, label: str, value: str) -> None:
        if label not in self.state.pitch_input:
            raise ValidationError(f'The selected template has no field "{label}".')
        self.state.pitch_input[label] = value

    def set_topic(self, topic: str) -> None:
        self.state.search_topic = topic or ""

    def set_practiced(self, text: str) -> None:
        self.state.practiced_pitch = text or ""

    # -- template changes seen by the session ---------------------------

    def update_template(self, template_id: str, definition: TemplateDefinition) -> Template:
        updated = self._registry.update(template_id, definition)
        self.refresh()
        return updated

    def delete_template(self, template_id: str) -> None:
        self._registry.delete(template_id)
        if self.state.selected_template_id == template_id:
            logger.info("selected_template_deleted id=%s fallback=%s", template_id, DEFAULT_TEMPLATE_ID)
            self.state.selected_template_id = DEFAULT_TEMPLATE_ID
        self.refresh()

    # -- transitions ---------------------------------------------------

    def generate(self) -> str:
        if self.state.step != WorkflowStep.INPUT:
            raise ValidationError("Start over before generating a new draft.")

        template = self.current_template()
        seconds = self.total_seconds()
        topic = self.state.search_topic.strip()

        if topic:
            prompt = build_research_prompt(topic, template.name, seconds)
        else:
            prompt = build_template_prompt(
                template.name,
                seconds,
                template.labels(),
                self.state.pitch_input,
                self.state.word_budget,
            )

        try:
            result = guarded_call(
                self._guard,
                "Generating...",
                self._generation.generate_text,
                prompt,
                grounded_search=bool(topic),
            )
        except PitchCoachError as exc:
            logger.warning("generate_failed template=%s research=%s error=%s", template.id, bool(topic), exc)
            raise

        self.state.locked_template_name = template.name
        self.state.generated_pitch = result.text
        self.state.sources = list(result.sources) if topic else []
        self.state.step = WorkflowStep.DRAFTED
        logger.info(
            "generate_done template=%s research=%s chars=%s sources=%s version=%s",
            template.id,
            bool(topic),
            len(result.text),
            len(self.state.sources),
            DRAFTING_VERSION,
        )
        return result.text

    def get_feedback(self) -> str:
        if not self.state.practiced_pitch.strip():
            raise ValidationError("Enter your practiced version to get feedback.")
        if self.state.step == WorkflowStep.INPUT:
            raise ValidationError("Generate a draft before asking for feedback.")

        prompt = build_feedback_prompt(self.state.generated_pitch, self.state.practiced_pitch)
        try:
            result = guarded_call(self._guard, "Analysing...", self._generation.generate_text, prompt)
        except PitchCoachError as exc:
            logger.warning("feedback_failed error=%s", exc)
            raise

        self.state.feedback = result.text
        self.state.step = WorkflowStep.REVIEWED
        logger.info("feedback_done chars=%s version=%s", len(result.text), DRAFTING_VERSION)
        return result.text

    def _next_pitch_id(self) -> int:
        candidate = now_ms()
        existing = {pitch.id for pitch in self._pitches}
        while candidate in existing:
            candidate += 1
        return candidate

    def save(self) -> Pitch:
        if self.state.step == WorkflowStep.INPUT:
            raise ValidationError("There is no generated pitch to save yet.")
        if len(self._pitches) >= GUEST_SAVE_LIMIT and not self._logged_in:
            self.state.pending_save = True
            logger.info("save_blocked_quota saved=%s limit=%s", len(self._pitches), GUEST_SAVE_LIMIT)
            raise QuotaError(
                f"Saving more than {GUEST_SAVE_LIMIT} pitches requires logging in.",
                limit=GUEST_SAVE_LIMIT,
            )

        title = self.state.search_topic.strip() or self.state.locked_template_name or UNTITLED_PITCH
        pitch = Pitch(
            id=self._next_pitch_id(),
            title=title,
            generated_pitch=self.state.generated_pitch,
            practiced_pitch=self.state.practiced_pitch,
            feedback=self.state.feedback,
            sources=list(self.state.sources),
            template_name=self.state.locked_template_name,
        )
        self._pitches = [pitch, *self._pitches]
        self.state.pending_save = False
        self._persist_pitches()
        logger.info("pitch_saved id=%s title=%s total=%s", pitch.id, title, len(self._pitches))
        return pitch

    def reset(self) -> None:
        self.state.step = WorkflowStep.INPUT
        self.state.generated_pitch = ""
        self.state.practiced_pitch = ""
        self.state.feedback = ""
        self.state.search_topic = ""
        self.state.sources = []
        self.state.pending_save = False
        self.state.pitch_input = {}
        self.state.locked_template_name = self.current_template().name
        self.refresh()
        logger.info("workflow_reset template=%s", self.state.selected_template_id)

    # -- saved pitches -------------------------------------------------

    def _persist_pitches(self) -> None:
        self._store.set(HISTORY_KEY, [pitch.to_json() for pitch in self._pitches])

    def list_pitches(self) -> List[Pitch]:
        return list(self._pitches)

    def get_pitch(self, pitch_id: int) -> Pitch:
        for pitch in self._pitches:
            if pitch.id == pitch_id:
                return pitch
        raise NotFoundError(f"Pitch not found: {pitch_id}")

    def load(self, pitch_id: int) -> Pitch:
        pitch = self.get_pitch(pitch_id)
        self.state.generated_pitch = pitch.generated_pitch
        self.state.practiced_pitch = pitch.practiced_pitch
        self.state.feedback = pitch.feedback
        self.state.sources = list(pitch.sources)
        self.state.locked_template_name = pitch.template_name or UNKNOWN_TEMPLATE
        self.state.step = WorkflowStep.REVIEWED
        logger.info("pitch_loaded id=%s", pitch_id)
        return pitch

    def delete_pitch(self, pitch_id: int) -> None:
        self.get_pitch(pitch_id)
        self._pitches = [pitch for pitch in self._pitches if pitch.id != pitch_id]
        self._persist_pitches()
        logger.info("pitch_deleted id=%s total=%s", pitch_id, len(self._pitches))

    # -- capability flag -------------------------------------------------

    def login(self) -> LoginResult:
        self._logged_in = True
        self._store.set(LOGIN_KEY, True)
        logger.info("login pending_save=%s", self.state.pending_save)
        if not self.state.pending_save:
            return LoginResult(logged_in=True)

        self.state.pending_save = False
        try:
            pitch = self.save()
        except PitchCoachError as exc:
            logger.warning("login_save_retry_failed error=%s", exc)
            return LoginResult(logged_in=True, retry_error=exc.message)
        return LoginResult(logged_in=True, saved_pitch=pitch)

    def logout(self) -> None:
        self._logged_in = False
        self._store.set(LOGIN_KEY, False)
        logger.info("logout")
