from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as SchemaValidationError
from pydantic.alias_generators import to_snake

from .busy import BusyGuard
from .constants import RECORDS_KEY, SELF_SPEAKER
from .errors import NotFoundError, PitchCoachError, ValidationError
from .llm_client import GenerationService, call_generation, guarded_call
from .media import MediaCapture, build_transcription_audio, mime_from_data_url
from .models import SCORE_DIMENSIONS, Evaluation, PitchRecord, RecordType, Scores, SessionState, now_ms
from .prompts.records import RECORDS_VERSION, build_evaluation_prompt, build_transcription_prompt
from .storage import KeyValueStore


logger = logging.getLogger("uvicorn.error")

# Free-text fields the editor may change directly; media and scores have their own operations.
EDITABLE_FIELDS = {
    "topic": "topic",
    "speaker": "speaker",
    "date": "date",
    "notes": "notes",
    "transcription": "transcription",
    "ai_feedback": "ai_feedback",
    "aiFeedback": "ai_feedback",
}


def _coerce_field(name: str, value: Any) -> Any:
    if name == "date":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError("Record date must be a millisecond timestamp.")
        return int(value)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"Record field {name} must be text.")
    return value


class RecordLifecycle:
    """Rehearsal records: one open in the editor at a time, the rest in the store.

    A new record stays a draft until the editor is closed. Records that are
    already persisted are written through on every change.
    """

    def __init__(
        self,
        state: SessionState,
        store: KeyValueStore,
        generation: GenerationService,
        media: MediaCapture,
        guard: BusyGuard,
    ) -> None:
        self.state = state
        self._store = store
        self._generation = generation
        self._media = media
        self._guard = guard
        self._records: List[PitchRecord] = self._load()

    def _load(self) -> List[PitchRecord]:
        stored = self._store.get(RECORDS_KEY)
        if not isinstance(stored, list):
            return []
        records: List[PitchRecord] = []
        for item in stored:
            try:
                records.append(PitchRecord.model_validate(item))
            except SchemaValidationError:
                logger.warning("records_load_skipped_invalid entry=%s", item, exc_info=True)
        return records

    def _persist(self) -> None:
        self._store.set(RECORDS_KEY, [record.to_json() for record in self._records])

    def _is_persisted(self, record_id: int) -> bool:
        return any(record.id == record_id for record in self._records)

    def _require_open(self) -> PitchRecord:
        if self.state.editing_record is None:
            raise ValidationError("No record is open.")
        return self.state.editing_record

    def _commit(self, updates: Dict[str, Any]) -> PitchRecord:
        record = self._require_open().model_copy(update=updates)
        self.state.editing_record = record
        if self._is_persisted(record.id):
            self._records = [record if item.id == record.id else item for item in self._records]
            self._persist()
        return record

    def _commit_result(self, record_id: int, updates: Dict[str, Any]) -> Optional[PitchRecord]:
        """Apply an AI result to the record it was requested for, open or not."""
        current = self.state.editing_record
        if current is not None and current.id == record_id:
            return self._commit(updates)
        if self._is_persisted(record_id):
            record = self.get(record_id).model_copy(update=updates)
            self._records = [record if item.id == record_id else item for item in self._records]
            self._persist()
            logger.info("record_result_applied_closed record=%s", record_id)
            return record
        logger.warning("record_result_dropped record=%s reason=draft_discarded", record_id)
        return None

    # -- listing -------------------------------------------------------

    def list(self, record_type: Optional[RecordType] = None) -> List[PitchRecord]:
        if record_type is None:
            return list(self._records)
        return [record for record in self._records if record.type == record_type]

    def get(self, record_id: int) -> PitchRecord:
        for record in self._records:
            if record.id == record_id:
                return record
        raise NotFoundError(f"Record not found: {record_id}")

    @property
    def current(self) -> Optional[PitchRecord]:
        return self.state.editing_record

    # -- editor --------------------------------------------------------

    def new_record(self, record_type: RecordType) -> PitchRecord:
        if record_type not in ("self", "other"):
            raise ValidationError(f"Unknown record type: {record_type}")
        stamp = now_ms()
        while self._is_persisted(stamp):
            stamp += 1
        record = PitchRecord(
            id=stamp,
            type=record_type,
            date=now_ms(),
            speaker=SELF_SPEAKER if record_type == "self" else "",
        )
        self.state.editing_record = record
        logger.info("record_draft_opened id=%s type=%s", record.id, record_type)
        return record

    def open(self, record_id: int) -> PitchRecord:
        record = self.get(record_id)
        self.state.editing_record = record
        return record

    def update(self, field_name: str, value: Any) -> PitchRecord:
        target = EDITABLE_FIELDS.get(field_name)
        if target is None:
            raise ValidationError(f"Record field cannot be edited: {field_name}")
        return self._commit({target: _coerce_field(target, value)})

    def close(self) -> Optional[PitchRecord]:
        record = self.state.editing_record
        if record is None:
            return None
        if not self._is_persisted(record.id):
            self._records = [record, *self._records]
            self._persist()
            logger.info("record_saved id=%s type=%s total=%s", record.id, record.type, len(self._records))
        self.state.editing_record = None
        return record

    def delete(self, record_id: int) -> None:
        self.get(record_id)
        self._records = [record for record in self._records if record.id != record_id]
        self._persist()
        if self.state.editing_record is not None and self.state.editing_record.id == record_id:
            self.state.editing_record = None
        logger.info("record_deleted id=%s total=%s", record_id, len(self._records))

    # -- media ---------------------------------------------------------

    def attach_audio(self, data: bytes, content_type: Optional[str]) -> PitchRecord:
        self._require_open()
        captured = self._media.capture_audio(data, content_type)
        return self._commit({"audio_url": captured.url, "audio_base64": captured.base64})

    def attach_photo(self, data: bytes, content_type: Optional[str]) -> PitchRecord:
        self._require_open()
        return self._commit({"photo_url": self._media.capture_photo(data, content_type)})

    # -- AI assistance -------------------------------------------------

    def transcribe(self) -> str:
        record = self._require_open()
        if not record.audio_base64:
            raise ValidationError("Record or upload audio before transcribing.")

        try:
            with self._guard.hold("Transcribing..."):
                audio = build_transcription_audio(record.audio_base64, mime_from_data_url(record.audio_url))
                result = call_generation(
                    self._generation.generate_text,
                    build_transcription_prompt(),
                    audio=audio,
                )
        except PitchCoachError as exc:
            logger.warning("transcribe_failed record=%s error=%s", record.id, exc)
            raise

        text = result.text.strip()
        self._commit_result(record.id, {"transcription": text})
        logger.info("transcribe_done record=%s chars=%s version=%s", record.id, len(text), RECORDS_VERSION)
        return text

    def evaluate(self) -> Evaluation:
        record = self._require_open()
        if not record.transcription.strip():
            raise ValidationError("Transcribe or type the pitch before asking for an evaluation.")

        try:
            result = guarded_call(
                self._guard,
                "Evaluating...",
                self._generation.generate_text,
                build_evaluation_prompt(record.transcription),
                schema=Evaluation,
            )
        except PitchCoachError as exc:
            logger.warning("evaluate_failed record=%s error=%s", record.id, exc)
            raise

        evaluation: Evaluation = result.data
        scores = Scores.model_validate(evaluation.scores.model_dump())
        self._commit_result(
            record.id,
            {
                "ai_scores": scores,
                "manual_scores": scores.model_copy(),
                "ai_feedback": evaluation.feedback,
            }
        )
        logger.info("evaluate_done record=%s version=%s", record.id, RECORDS_VERSION)
        return evaluation

    def set_manual_score(self, dimension: str, value: Any) -> Scores:
        record = self._require_open()
        dimension = to_snake(dimension or "")
        if dimension not in SCORE_DIMENSIONS:
            raise ValidationError(f"Unknown score dimension: {dimension}")
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError("Scores must be whole numbers from 1 to 5.")
        scores = record.manual_scores.model_copy(update={dimension: value})
        return self._commit({"manual_scores": scores}).manual_scores
