import pytest

from app.backend.constants import DEFAULT_TEMPLATE_ID, HISTORY_KEY, LOGIN_KEY, UNTITLED_PITCH
from app.backend.errors import BusyError, GenerationError, NotFoundError, QuotaError, ValidationError
from app.backend.llm_client import GenerationResult
from app.backend.models import Source, TemplateDefinition, TemplateField, WorkflowStep


def _draft(session, text="Draft text"):
    session.generation.queue_text(text)
    session.workflow.generate()


def test_initial_state_uses_default_template(session):
    view = session.workflow.view()
    assert view.step == 1
    assert view.selected_template_id == DEFAULT_TEMPLATE_ID
    assert view.template_name == "Problem & Solution"
    assert view.total_seconds == 60
    assert list(view.pitch_input) == session.templates.get(DEFAULT_TEMPLATE_ID).labels()
    assert sum(view.word_budget.values()) == pytest.approx(180, abs=5)


def test_template_prompt_lists_fields_budgets_and_duration(session):
    workflow = session.workflow
    workflow.set_duration("90")
    workflow.set_field("Your solution", "A smart water bottle")

    _draft(session)

    prompt = session.generation.calls[0]["prompt"]
    assert session.generation.calls[0]["grounded_search"] is False
    assert "A smart water bottle" in prompt
    assert "about 68 words" in prompt
    assert "(not provided)" in prompt
    assert workflow.state.step == WorkflowStep.DRAFTED
    assert workflow.state.generated_pitch == "Draft text"
    assert workflow.state.sources == []


def test_research_topic_uses_grounded_search_and_keeps_sources(session):
    session.workflow.set_topic("Vertical farming")
    sources = [Source(title="Report", uri="https://example.org/report")]
    session.generation.queue_text(GenerationResult(text="Researched draft", sources=sources))

    session.workflow.generate()

    call = session.generation.calls[0]
    assert call["grounded_search"] is True
    assert "Vertical farming" in call["prompt"]
    assert session.workflow.state.sources == sources


def test_failed_generation_leaves_state_untouched(session):
    workflow = session.workflow
    workflow.set_field("Your solution", "Kept input")
    session.generation.queue_text(GenerationError("provider down"))

    with pytest.raises(GenerationError):
        workflow.generate()

    assert workflow.state.step == WorkflowStep.INPUT
    assert workflow.state.generated_pitch == ""
    assert workflow.state.pitch_input["Your solution"] == "Kept input"
    assert not session.guard.busy


def test_untyped_provider_failure_is_reported_as_generation_error(session):
    session.generation.queue_text(RuntimeError("socket closed"))
    with pytest.raises(GenerationError):
        session.workflow.generate()
    assert session.workflow.state.step == WorkflowStep.INPUT


def test_generate_only_from_input(session):
    _draft(session)
    with pytest.raises(ValidationError):
        session.workflow.generate()


def test_whitespace_practiced_text_is_rejected_without_a_call(session):
    _draft(session)
    session.workflow.set_practiced("   \n ")
    calls_before = len(session.generation.calls)

    with pytest.raises(ValidationError):
        session.workflow.get_feedback()

    assert len(session.generation.calls) == calls_before
    assert session.workflow.state.step == WorkflowStep.DRAFTED


def test_feedback_moves_to_reviewed(session):
    _draft(session, "Generated version")
    session.workflow.set_practiced("My practiced version")
    session.generation.queue_text("Strengths: clear.")

    assert session.workflow.get_feedback() == "Strengths: clear."

    prompt = session.generation.calls[-1]["prompt"]
    assert "Generated version" in prompt
    assert "My practiced version" in prompt
    assert session.workflow.state.step == WorkflowStep.REVIEWED


def test_feedback_failure_stays_drafted(session):
    _draft(session)
    session.workflow.set_practiced("Practiced")
    session.generation.queue_text(GenerationError("timeout"))
    with pytest.raises(GenerationError):
        session.workflow.get_feedback()
    assert session.workflow.state.step == WorkflowStep.DRAFTED
    assert session.workflow.state.feedback == ""


def test_busy_slot_rejects_a_second_operation(session):
    _draft(session)
    session.workflow.set_practiced("Practiced")
    with session.guard.hold("Generating..."):
        with pytest.raises(BusyError):
            session.workflow.get_feedback()
    assert session.generation.kinds() == ["text"]
    assert session.workflow.state.step == WorkflowStep.DRAFTED


def test_save_titles_and_prepends(session, store):
    workflow = session.workflow
    _draft(session)
    first = workflow.save()
    assert first.title == "Problem & Solution"

    workflow.reset()
    workflow.set_topic("Solar kiosks")
    _draft(session)
    second = workflow.save()
    assert second.title == "Solar kiosks"

    assert [pitch.id for pitch in workflow.list_pitches()] == [second.id, first.id]
    assert [item["id"] for item in store.get(HISTORY_KEY)] == [second.id, first.id]


def test_save_falls_back_to_untitled(session):
    _draft(session)
    session.state.locked_template_name = ""
    assert session.workflow.save().title == UNTITLED_PITCH


def test_save_requires_a_draft(session):
    with pytest.raises(ValidationError):
        session.workflow.save()


def test_guest_quota_and_login_retry(session, store):
    workflow = session.workflow
    _draft(session)
    for _ in range(3):
        workflow.save()

    with pytest.raises(QuotaError) as excinfo:
        workflow.save()
    assert excinfo.value.limit == 3
    assert workflow.state.pending_save is True
    assert len(workflow.list_pitches()) == 3

    result = workflow.login()

    assert result.logged_in is True
    assert result.saved_pitch is not None
    assert result.retry_error is None
    assert len(workflow.list_pitches()) == 4
    assert workflow.state.pending_save is False
    assert store.get(LOGIN_KEY) is True


def test_login_without_pending_save_does_not_save(session):
    result = session.workflow.login()
    assert result.saved_pitch is None
    assert session.workflow.list_pitches() == []


def test_reset_keeps_selected_template(session):
    workflow = session.workflow
    workflow.select_template("default-investor")
    workflow.set_topic("Topic")
    _draft(session)
    workflow.set_practiced("Practiced")

    workflow.reset()

    state = workflow.state
    assert state.step == WorkflowStep.INPUT
    assert state.selected_template_id == "default-investor"
    assert state.locked_template_name == "Investor Pitch"
    assert state.generated_pitch == state.practiced_pitch == state.feedback == state.search_topic == ""
    assert set(state.pitch_input.values()) == {""}
    assert len(state.pitch_input) == 7


def test_load_enters_reviewed_directly(session):
    _draft(session, "Saved draft")
    saved = session.workflow.save()
    session.workflow.reset()

    session.workflow.load(saved.id)

    assert session.workflow.state.step == WorkflowStep.REVIEWED
    assert session.workflow.state.generated_pitch == "Saved draft"
    with pytest.raises(NotFoundError):
        session.workflow.load(12345)


def test_delete_pitch(session, store):
    _draft(session)
    saved = session.workflow.save()
    session.workflow.delete_pitch(saved.id)
    assert session.workflow.list_pitches() == []
    assert store.get(HISTORY_KEY) == []


def test_selection_changes_recompute_draft_and_budget(session):
    workflow = session.workflow
    workflow.set_field("Your solution", "Keep me")
    workflow.select_template("default-networking")
    assert len(workflow.state.pitch_input) == 4
    assert len(workflow.state.word_budget) == 4

    workflow.set_duration("custom", "abc")
    assert workflow.state.word_budget == {}

    workflow.set_duration("custom", "30")
    assert sum(workflow.state.word_budget.values()) == pytest.approx(90, abs=4)

    for preset in ("150", "210", "300"):
        workflow.set_duration(preset)
        assert workflow.total_seconds() == int(preset)
        assert sum(workflow.state.word_budget.values()) == pytest.approx(int(preset) * 3, abs=4)

    with pytest.raises(ValidationError):
        workflow.set_duration("45")
    with pytest.raises(ValidationError):
        workflow.set_field("Not a field", "x")
    with pytest.raises(NotFoundError):
        workflow.select_template("missing")


def test_deleting_selected_template_falls_back_to_default(session):
    custom = session.templates.create(
        TemplateDefinition(name="Mine", fields=[TemplateField(id="a", label="Only")])
    )
    session.workflow.select_template(custom.id)
    assert list(session.workflow.state.pitch_input) == ["Only"]

    session.workflow.delete_template(custom.id)

    assert session.workflow.state.selected_template_id == DEFAULT_TEMPLATE_ID
    assert list(session.workflow.state.pitch_input) == session.templates.get(DEFAULT_TEMPLATE_ID).labels()


def test_editing_selected_template_refreshes_inputs(session):
    custom = session.templates.create(
        TemplateDefinition(name="Mine", fields=[TemplateField(id="a", label="One")])
    )
    session.workflow.select_template(custom.id)
    session.workflow.set_field("One", "kept")

    session.workflow.update_template(
        custom.id,
        TemplateDefinition(
            name="Mine",
            fields=[TemplateField(id="a", label="One"), TemplateField(id="b", label="Two")],
        ),
    )

    assert session.workflow.state.pitch_input == {"One": "kept", "Two": ""}
    assert set(session.workflow.state.word_budget) == {"One", "Two"}


def test_draft_keeps_the_template_name_it_was_generated_with(session):
    custom = session.templates.create(
        TemplateDefinition(name="Mine", fields=[TemplateField(id="a", label="One")])
    )
    session.workflow.select_template(custom.id)
    _draft(session)

    session.workflow.update_template(
        custom.id,
        TemplateDefinition(name="Renamed", fields=[TemplateField(id="a", label="One")]),
    )

    assert session.workflow.view().template_name == "Mine"
    assert session.workflow.save().template_name == "Mine"


def test_research_topic_text_is_not_expanded_as_a_placeholder(session):
    session.workflow.set_topic("AI {template_name} safety")
    session.generation.queue_text("Draft")

    session.workflow.generate()

    prompt = session.generation.calls[0]["prompt"]
    assert "AI {template_name} safety" in prompt
    assert "AI Problem & Solution safety" not in prompt
