from __future__ import annotations

import logging
from typing import List

from pydantic import ValidationError as SchemaValidationError

from .constants import COLLECTIONS_KEY, COMMUNITY_KEY
from .errors import NotFoundError
from .models import CommunityPitch
from .storage import KeyValueStore


logger = logging.getLogger("uvicorn.error")


class CommunityBoard:
    """Published pitches (most recent first) and the ids the user has collected."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._pitches: List[CommunityPitch] = self._load_pitches()
        stored_ids = store.get(COLLECTIONS_KEY)
        self._collections: List[int] = [int(item) for item in stored_ids] if isinstance(stored_ids, list) else []

    def _load_pitches(self) -> List[CommunityPitch]:
        stored = self._store.get(COMMUNITY_KEY)
        if not isinstance(stored, list):
            return []
        pitches: List[CommunityPitch] = []
        for item in stored:
            try:
                pitches.append(CommunityPitch.model_validate(item))
            except SchemaValidationError:
                logger.warning("community_load_skipped_invalid entry=%s", item, exc_info=True)
        return pitches

    def list(self) -> List[CommunityPitch]:
        return list(self._pitches)

    def get(self, pitch_id: int) -> CommunityPitch:
        for pitch in self._pitches:
            if pitch.id == pitch_id:
                return pitch
        raise NotFoundError(f"Community pitch not found: {pitch_id}")

    def publish(self, pitch: CommunityPitch) -> CommunityPitch:
        self._pitches = [pitch, *self._pitches]
        self._store.set(COMMUNITY_KEY, [item.to_json() for item in self._pitches])
        logger.info("community_published id=%s total=%s", pitch.id, len(self._pitches))
        return pitch

    def toggle_collection(self, pitch_id: int) -> bool:
        self.get(pitch_id)
        if pitch_id in self._collections:
            self._collections = [item for item in self._collections if item != pitch_id]
            collected = False
        else:
            self._collections = [*self._collections, pitch_id]
            collected = True
        self._store.set(COLLECTIONS_KEY, list(self._collections))
        logger.info("collection_toggled id=%s collected=%s", pitch_id, collected)
        return collected

    def collected(self) -> List[CommunityPitch]:
        wanted = set(self._collections)
        return [pitch for pitch in self._pitches if pitch.id in wanted]
