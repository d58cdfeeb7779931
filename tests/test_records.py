import base64
import json

import pytest

from app.backend.constants import RECORDS_KEY, SELF_SPEAKER
from app.backend.errors import CaptureError, GenerationError, ValidationError
from app.backend.models import Scores

EVALUATION = json.dumps(
    {
        "scores": {
            "audienceEngagement": 4,
            "fluency": 3,
            "bodyLanguage": 2,
            "structure": 5,
            "timeManagement": 4,
        },
        "feedback": "Strong structure, slow down a little.",
    }
)


def test_new_self_record_defaults(session, store):
    record = session.records.new_record("self")
    assert record.speaker == SELF_SPEAKER
    assert record.ai_scores == Scores()
    assert record.manual_scores.fluency == 3
    assert store.get(RECORDS_KEY) is None

    other = session.records.new_record("other")
    assert other.speaker == ""


def test_empty_draft_is_committed_on_close(session, store):
    record = session.records.new_record("other")
    closed = session.records.close()

    assert closed.id == record.id
    assert session.records.current is None
    assert [item["id"] for item in store.get(RECORDS_KEY)] == [record.id]
    assert store.get(RECORDS_KEY)[0]["topic"] == ""


def test_records_are_prepended_and_filtered(session):
    first = session.records.new_record("self")
    session.records.close()
    second = session.records.new_record("other")
    session.records.close()

    assert [item.id for item in session.records.list()] == [second.id, first.id]
    assert [item.id for item in session.records.list("self")] == [first.id]


def test_draft_edits_stay_in_memory_until_close(session, store):
    session.records.new_record("self")
    session.records.update("topic", "Seed round")
    assert store.get(RECORDS_KEY) is None

    session.records.close()
    assert store.get(RECORDS_KEY)[0]["topic"] == "Seed round"


def test_persisted_record_edits_are_written_through(session, store):
    record = session.records.new_record("other")
    session.records.close()

    session.records.open(record.id)
    session.records.update("notes", "Great eye contact")

    assert store.get(RECORDS_KEY)[0]["notes"] == "Great eye contact"
    assert session.records.get(record.id).notes == "Great eye contact"


def test_readonly_and_unknown_fields_are_rejected(session):
    session.records.new_record("self")
    with pytest.raises(ValidationError):
        session.records.update("id", 5)
    with pytest.raises(ValidationError):
        session.records.update("aiScores", {})
    with pytest.raises(ValidationError):
        session.records.update("date", "yesterday")


def test_operations_need_an_open_record(session):
    with pytest.raises(ValidationError):
        session.records.update("topic", "x")
    with pytest.raises(ValidationError):
        session.records.transcribe()


def test_transcribe_requires_audio(session, generation):
    session.records.new_record("self")
    with pytest.raises(ValidationError):
        session.records.transcribe()
    assert generation.calls == []


def test_transcribe_sends_wav_audio_and_overwrites(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "old text")
    session.records.attach_audio(b"RIFF....WAVEfmt ", "audio/wav")
    generation.queue_text("  Hello investors.  ")

    text = session.records.transcribe()

    assert text == "Hello investors."
    assert session.records.current.transcription == "Hello investors."
    audio = generation.calls[0]["audio"]
    assert audio.format == "wav"
    assert base64.b64decode(audio.data_base64) == b"RIFF....WAVEfmt "


def test_failed_transcription_keeps_previous_text(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "old text")
    session.records.attach_audio(b"ID3audio", "audio/mpeg")
    generation.queue_text(GenerationError("timeout"))

    with pytest.raises(GenerationError):
        session.records.transcribe()

    assert session.records.current.transcription == "old text"
    assert generation.calls[0]["audio"].format == "mp3"


def test_evaluate_sets_manual_scores_equal_to_ai_scores(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "Hello investors, we fix water.")
    generation.queue_text(EVALUATION)

    evaluation = session.records.evaluate()

    record = session.records.current
    assert evaluation.scores.structure == 5
    assert record.ai_scores == record.manual_scores
    assert record.ai_scores.body_language == 2
    assert record.ai_feedback == "Strong structure, slow down a little."
    assert generation.calls[0]["schema"].__name__ == "Evaluation"


def test_evaluate_requires_transcription(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "   ")
    with pytest.raises(ValidationError):
        session.records.evaluate()
    assert generation.calls == []


def test_malformed_evaluation_is_a_generation_error(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "Text")
    generation.queue_text('{"scores": {"fluency": 9}, "feedback": "x"}')

    with pytest.raises(GenerationError):
        session.records.evaluate()

    assert session.records.current.ai_feedback == ""


def test_manual_score_touches_one_dimension(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "Text")
    generation.queue_text(EVALUATION)
    session.records.evaluate()

    scores = session.records.set_manual_score("fluency", 5)

    record = session.records.current
    assert scores.fluency == 5
    assert record.ai_scores.fluency == 3
    assert record.manual_scores.model_dump(exclude={"fluency"}) == record.ai_scores.model_dump(exclude={"fluency"})

    assert session.records.set_manual_score("timeManagement", 1).time_management == 1


@pytest.mark.parametrize("dimension, value", [("fluency", 0), ("fluency", 6), ("fluency", True), ("charisma", 3)])
def test_manual_score_validation(session, dimension, value):
    session.records.new_record("self")
    with pytest.raises(ValidationError):
        session.records.set_manual_score(dimension, value)
    assert session.records.current.manual_scores == Scores()


def test_photo_capture_and_validation(session):
    session.records.new_record("other")
    record = session.records.attach_photo(b"\xff\xd8\xff\xe0jpeg", "image/jpeg")
    assert record.photo_url.startswith("data:image/jpeg;base64,")

    with pytest.raises(CaptureError):
        session.records.attach_photo(b"GIF89a", "image/gif")
    with pytest.raises(CaptureError):
        session.records.attach_audio(b"", "audio/webm")
    with pytest.raises(CaptureError):
        session.records.attach_audio(b"x" * 2048, "audio/webm")


def test_delete_record(session, store):
    record = session.records.new_record("self")
    session.records.close()
    session.records.open(record.id)

    session.records.delete(record.id)

    assert session.records.list() == []
    assert session.records.current is None
    assert store.get(RECORDS_KEY) == []


def test_evaluation_missing_a_dimension_is_rejected(session, generation):
    session.records.new_record("self")
    session.records.update("transcription", "Text")
    generation.queue_text('{"scores": {"fluency": 5}, "feedback": "x"}')

    with pytest.raises(GenerationError):
        session.records.evaluate()

    record = session.records.current
    assert record.ai_scores == Scores()
    assert record.manual_scores == Scores()
    assert record.ai_feedback == ""


def test_transcription_lands_on_the_record_it_was_requested_for(session, generation, monkeypatch, store):
    first = session.records.new_record("self")
    session.records.attach_audio(b"RIFF....WAVEfmt ", "audio/wav")
    session.records.close()
    second = session.records.new_record("other")
    session.records.close()
    session.records.open(first.id)
    generation.queue_text("From the first clip")
    reply = generation.generate_text

    def switch_record_then_reply(*args, **kwargs):
        session.records.open(second.id)
        return reply(*args, **kwargs)

    monkeypatch.setattr(generation, "generate_text", switch_record_then_reply)

    session.records.transcribe()

    assert session.records.current.id == second.id
    assert session.records.current.transcription == ""
    assert session.records.get(second.id).transcription == ""
    assert session.records.get(first.id).transcription == "From the first clip"
    stored = {item["id"]: item for item in store.get(RECORDS_KEY)}
    assert stored[first.id]["transcription"] == "From the first clip"
