from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from pydantic import ValidationError as SchemaValidationError

from .busy import BusyGuard
from .constants import DEFAULT_TEMPLATE_ID, TEMPLATES_KEY
from .errors import GenerationError, ImmutableError, NotFoundError, ValidationError
from .llm_client import GenerationService, guarded_call
from .models import FieldSuggestion, Template, TemplateDefinition, TemplateField, now_ms
from .prompts.templates import build_field_suggestion_prompt
from .storage import KeyValueStore


logger = logging.getLogger("uvicorn.error")


def _builtin(template_id: str, name: str, prefix: str, labels: Sequence[str]) -> Template:
    return Template(
        id=template_id,
        name=name,
        is_builtin=True,
        fields=[TemplateField(id=f"{prefix}{index}", label=label) for index, label in enumerate(labels, start=1)],
    )


BUILTIN_TEMPLATES: tuple[Template, ...] = (
    _builtin(
        DEFAULT_TEMPLATE_ID,
        "Problem & Solution",
        "ps",
        [
            "Core problem / pain point",
            "Your solution",
            "How the solution works",
            "Key benefits",
            "Call to action",
        ],
    ),
    _builtin(
        "default-visionary",
        "Vision",
        "vis",
        [
            "Where things stand today",
            "The future vision",
            "The path to get there",
            "The critical first step",
            "Invitation to join",
        ],
    ),
    _builtin(
        "default-product-demo",
        "Product Introduction",
        "pd",
        [
            "Who the target user is",
            "The user's main challenge",
            "Core product features",
            "How the product solves the challenge",
            "Next step / how to try it",
        ],
    ),
    _builtin(
        "default-proposal",
        "Project Proposal",
        "prop",
        [
            "Project goal",
            "Scope and deliverables",
            "Timeline",
            "Resources and budget",
            "Expected benefits",
        ],
    ),
    _builtin(
        "default-update",
        "Internal Status Update",
        "upd",
        [
            "Project / task summary",
            "Progress last week",
            "Plan for this week",
            "Challenges / support needed",
        ],
    ),
    _builtin(
        "default-investor",
        "Investor Pitch",
        "inv",
        [
            "Market pain point",
            "Our solution",
            "Market size (TAM, SAM, SOM)",
            "Business model",
            "The team",
            "Funding ask and plan",
            "Call to action",
        ],
    ),
    _builtin(
        "default-sales",
        "Sales Pitch",
        "sal",
        [
            "The customer's challenge",
            "Our solution",
            "Unique value proposition",
            "Case studies / proof points",
            "Call to action",
        ],
    ),
    _builtin(
        "default-networking",
        "Networking Introduction",
        "net",
        [
            "Who I am",
            "What I do",
            "What I offer / am looking for",
            "Call to action",
        ],
    ),
    _builtin(
        "default-business-model",
        "Business Model Overview",
        "bm",
        [
            "Value proposition",
            "Customer segments",
            "Revenue streams",
            "Key activities",
            "Competitive advantage",
        ],
    ),
)

BUILTIN_IDS = frozenset(template.id for template in BUILTIN_TEMPLATES)


def default_template() -> Template:
    return BUILTIN_TEMPLATES[0]


def validate_definition(name: str, fields: Sequence[TemplateField]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Template name cannot be empty.")
    if not fields:
        raise ValidationError("A template needs at least one field.")
    seen: set[str] = set()
    for item in fields:
        if item.label in seen:
            raise ValidationError(f'Field label "{item.label}" is used more than once in this template.')
        seen.add(item.label)
    return cleaned


def reorder_fields(fields: Sequence[TemplateField], from_index: int, to_index: int) -> List[TemplateField]:
    reordered = list(fields)
    if from_index == to_index:
        return reordered
    if not (0 <= from_index < len(reordered)) or not (0 <= to_index < len(reordered)):
        raise ValidationError("Field index out of range.")
    moved = reordered.pop(from_index)
    reordered.insert(to_index, moved)
    return reordered


def new_template() -> Template:
    stamp = now_ms()
    return Template(
        id=f"custom-{stamp}",
        name="My new template",
        fields=[TemplateField(id=f"f-{stamp}", label="Field 1")],
    )


def add_field(template: Template, label: str = "New field") -> Template:
    field = TemplateField(id=f"f-{now_ms()}-{len(template.fields)}", label=label)
    return template.model_copy(update={"fields": [*template.fields, field]})


def remove_field(template: Template, field_id: str) -> Template:
    if len(template.fields) <= 1:
        raise ValidationError("A template needs at least one field.")
    return template.model_copy(update={"fields": [item for item in template.fields if item.id != field_id]})


class TemplateRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        generation: Optional[GenerationService] = None,
        guard: Optional[BusyGuard] = None,
    ) -> None:
        self._store = store
        self._generation = generation
        self._guard = guard or BusyGuard("templates")
        self._custom: List[Template] = self._load_custom()

    def _load_custom(self) -> List[Template]:
        stored = self._store.get(TEMPLATES_KEY)
        if not isinstance(stored, list):
            return []
        templates: List[Template] = []
        for item in stored:
            try:
                template = Template.model_validate(item)
            except SchemaValidationError:
                logger.warning("templates_load_skipped_invalid entry=%s", item, exc_info=True)
                continue
            if template.id in BUILTIN_IDS:
                continue
            templates.append(template.model_copy(update={"is_builtin": False}))
        return templates

    def _persist(self) -> None:
        self._store.set(TEMPLATES_KEY, [template.to_json() for template in self._custom])

    def list(self) -> List[Template]:
        return [*BUILTIN_TEMPLATES, *self._custom]

    def find(self, template_id: str) -> Optional[Template]:
        for template in self.list():
            if template.id == template_id:
                return template
        return None

    def get(self, template_id: str) -> Template:
        template = self.find(template_id)
        if template is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return template

    def _unique_id(self, requested: Optional[str]) -> str:
        candidate = requested or f"custom-{now_ms()}"
        suffix = 1
        base = candidate
        while self.find(candidate) is not None:
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    def create(self, definition: TemplateDefinition, *, template_id: Optional[str] = None) -> Template:
        name = validate_definition(definition.name, definition.fields)
        template = Template(
            id=self._unique_id(template_id),
            name=name,
            is_builtin=False,
            fields=list(definition.fields),
        )
        self._custom.append(template)
        self._persist()
        logger.info("template_created id=%s fields=%s", template.id, len(template.fields))
        return template

    def update(self, template_id: str, definition: TemplateDefinition) -> Template:
        existing = self.get(template_id)
        if existing.is_builtin:
            raise ImmutableError("Built-in templates cannot be edited.")
        name = validate_definition(definition.name, definition.fields)
        updated = existing.model_copy(update={"name": name, "fields": list(definition.fields)})
        self._custom = [updated if item.id == template_id else item for item in self._custom]
        self._persist()
        logger.info("template_updated id=%s fields=%s", template_id, len(updated.fields))
        return updated

    def delete(self, template_id: str) -> None:
        existing = self.get(template_id)
        if existing.is_builtin:
            raise ImmutableError("Built-in templates cannot be deleted.")
        self._custom = [item for item in self._custom if item.id != template_id]
        self._persist()
        logger.info("template_deleted id=%s", template_id)

    def suggest_fields(self, name: str) -> List[TemplateField]:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Name the template before asking for a suggested structure.")
        if self._generation is None:
            raise GenerationError("No generation service is configured.")

        result = guarded_call(
            self._guard,
            "Suggesting structure...",
            self._generation.generate_text,
            build_field_suggestion_prompt(cleaned),
            schema=FieldSuggestion,
        )
        labels = [str(label).strip() for label in result.data.fields if str(label).strip()]
        if not labels:
            raise GenerationError("The service did not suggest any fields.")
        stamp = now_ms()
        logger.info("template_fields_suggested name=%s count=%s", cleaned, len(labels))
        return [TemplateField(id=f"f-{stamp}-{index}", label=label) for index, label in enumerate(labels)]
