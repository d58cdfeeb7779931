from collections import deque

import pytest

from app.backend.busy import BusyGuard
from app.backend.llm_client import GenerationResult, validate_structured
from app.backend.media import UploadedMediaCapture
from app.backend.session import build_session
from app.backend.storage import InMemoryKeyValueStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


class FakeGenerationService:
    """Queues canned replies; records every call it receives.

    Text replies are strings (parsed against the schema when one is given),
    ``GenerationResult`` instances, or exceptions to raise.
    """

    provider_name = "fake"

    def __init__(self):
        self.text_replies = deque()
        self.image_replies = deque()
        self.calls = []

    def queue_text(self, *replies):
        self.text_replies.extend(replies)

    def queue_image(self, *replies):
        self.image_replies.extend(replies)

    def generate_text(self, prompt, *, grounded_search=False, schema=None, audio=None):
        self.calls.append(
            {"kind": "text", "prompt": prompt, "grounded_search": grounded_search, "schema": schema, "audio": audio}
        )
        if not self.text_replies:
            raise AssertionError("unexpected generate_text call")
        reply = self.text_replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, GenerationResult):
            return reply
        data = validate_structured(reply, schema) if schema is not None else None
        return GenerationResult(text=reply, data=data)

    def generate_image(self, prompt):
        self.calls.append({"kind": "image", "prompt": prompt})
        if not self.image_replies:
            raise AssertionError("unexpected generate_image call")
        reply = self.image_replies.popleft()
        if isinstance(reply, Exception):
            raise reply
        return reply

    def kinds(self):
        return [call["kind"] for call in self.calls]


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def generation():
    return FakeGenerationService()


@pytest.fixture
def guard():
    return BusyGuard("test")


@pytest.fixture
def session(store, generation):
    return build_session(store=store, generation=generation, media=UploadedMediaCapture(max_bytes=1024))
