from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .busy import BusyGuard
from .community import CommunityBoard
from .llm_client import GenerationService, OpenAIGenerationService
from .media import MediaCapture, UploadedMediaCapture
from .models import SessionState
from .pitch_workflow import PitchWorkflow
from .profile import ProfileService
from .records import RecordLifecycle
from .sharing import SharingPipeline
from .storage import KeyValueStore, build_store
from .templates import TemplateRegistry


logger = logging.getLogger("uvicorn.error")


@dataclass
class PitchSession:
    """Everything one user session needs, sharing one store and one busy slot."""

    state: SessionState
    store: KeyValueStore
    generation: GenerationService
    guard: BusyGuard
    templates: TemplateRegistry
    workflow: PitchWorkflow
    community: CommunityBoard
    sharing: SharingPipeline
    records: RecordLifecycle
    profile: ProfileService


def build_session(
    store: Optional[KeyValueStore] = None,
    generation: Optional[GenerationService] = None,
    media: Optional[MediaCapture] = None,
) -> PitchSession:
    store = store if store is not None else build_store()
    generation = generation if generation is not None else OpenAIGenerationService()
    media = media if media is not None else UploadedMediaCapture()

    state = SessionState()
    guard = BusyGuard("session")
    templates = TemplateRegistry(store, generation, guard)
    workflow = PitchWorkflow(state, templates, store, generation, guard)
    community = CommunityBoard(store)
    session = PitchSession(
        state=state,
        store=store,
        generation=generation,
        guard=guard,
        templates=templates,
        workflow=workflow,
        community=community,
        sharing=SharingPipeline(workflow, community, generation, guard),
        records=RecordLifecycle(state, store, generation, media, guard),
        profile=ProfileService(store),
    )
    logger.info(
        "session_built storage=%s templates=%s saved_pitches=%s logged_in=%s",
        getattr(store, "storage_name", type(store).__name__),
        len(templates.list()),
        len(workflow.list_pitches()),
        workflow.logged_in,
    )
    return session
