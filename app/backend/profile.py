from __future__ import annotations

import logging
import secrets
from urllib.parse import urlencode

from pydantic import ValidationError as SchemaValidationError
from pydantic.alias_generators import to_snake

from .constants import PROFILE_KEY, PROFILE_LINK_BASE, QR_SERVICE_URL, USER_ID_KEY
from .errors import NotFoundError, ValidationError
from .models import DEFAULT_AVATAR, CustomField, UserProfile, now_ms


logger = logging.getLogger("uvicorn.error")

TEXT_FIELDS = {"avatar", "unit", "title", "experience", "interests", "email"}
BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def new_user_id() -> str:
    suffix = "".join(secrets.choice(BASE36) for _ in range(7))
    return f"user-{now_ms()}-{suffix}"


def qr_code_url_for(user_id: str) -> str:
    query = urlencode({"size": "250x250", "data": f"{PROFILE_LINK_BASE}{user_id}"})
    return f"{QR_SERVICE_URL}?{query}"


class ProfileService:
    def __init__(self, store) -> None:
        self._store = store
        self._profile = self._load()

    def _load(self) -> UserProfile:
        stored = self._store.get(PROFILE_KEY)
        if not isinstance(stored, dict):
            return UserProfile()
        try:
            profile = UserProfile.model_validate(stored)
        except SchemaValidationError:
            logger.warning("profile_load_invalid using_default=true", exc_info=True)
            return UserProfile()
        if not profile.avatar:
            profile = profile.model_copy(update={"avatar": DEFAULT_AVATAR})
        return profile

    def _save(self, profile: UserProfile) -> UserProfile:
        self._profile = profile
        self._store.set(PROFILE_KEY, profile.to_json())
        return profile

    def get(self) -> UserProfile:
        return self._profile

    def update(self, field_name: str, value: str) -> UserProfile:
        name = to_snake(field_name or "")
        if name not in TEXT_FIELDS:
            raise ValidationError(f"Profile field cannot be edited: {field_name}")
        if name == "avatar" and not value:
            value = DEFAULT_AVATAR
        return self._save(self._profile.model_copy(update={name: value or ""}))

    def add_custom_field(self) -> CustomField:
        stamp = now_ms()
        existing = {item.id for item in self._profile.custom_fields}
        while str(stamp) in existing:
            stamp += 1
        item = CustomField(id=str(stamp), label="", value="")
        self._save(self._profile.model_copy(update={"custom_fields": [*self._profile.custom_fields, item]}))
        return item

    def update_custom_field(self, field_id: str, key: str, text: str) -> CustomField:
        if key not in ("label", "value"):
            raise ValidationError(f"Unknown custom field key: {key}")
        updated = None
        items = []
        for item in self._profile.custom_fields:
            if item.id == field_id:
                item = item.model_copy(update={key: text or ""})
                updated = item
            items.append(item)
        if updated is None:
            raise NotFoundError(f"Custom field not found: {field_id}")
        self._save(self._profile.model_copy(update={"custom_fields": items}))
        return updated

    def delete_custom_field(self, field_id: str) -> None:
        remaining = [item for item in self._profile.custom_fields if item.id != field_id]
        if len(remaining) == len(self._profile.custom_fields):
            raise NotFoundError(f"Custom field not found: {field_id}")
        self._save(self._profile.model_copy(update={"custom_fields": remaining}))

    def user_id(self) -> str:
        stored = self._store.get(USER_ID_KEY)
        if isinstance(stored, str) and stored:
            return stored
        created = new_user_id()
        self._store.set(USER_ID_KEY, created)
        logger.info("user_id_created id=%s", created)
        return created

    def profile_link(self) -> str:
        return f"{PROFILE_LINK_BASE}{self.user_id()}"

    def qr_code_url(self) -> str:
        return qr_code_url_for(self.user_id())
