import json
import random
from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from heroverse.models import Persona
from heroverse.session import Session


def image_response(data: bytes = b"png-bytes", mime: str = "image/png") -> SimpleNamespace:
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime), text=None)
    return SimpleNamespace(candidates=[
        SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    ])


def empty_response() -> SimpleNamespace:
    return SimpleNamespace(candidates=[])


def text_response(text: str) -> SimpleNamespace:
    part = SimpleNamespace(inline_data=None, text=text)
    return SimpleNamespace(candidates=[
        SimpleNamespace(content=SimpleNamespace(parts=[part]), finish_reason="STOP")
    ])


def finish_response(reason: str) -> SimpleNamespace:
    return SimpleNamespace(candidates=[
        SimpleNamespace(content=SimpleNamespace(parts=[]), finish_reason=reason)
    ])


def beat_json(**overrides) -> str:
    beat = {
        "caption": "The city held its breath.",
        "dialogue": "We move at dawn.",
        "scene": "HERO stands on a rain-soaked rooftop at night",
        "focus_char": "hero",
        "choices": ["Tell the truth", "Protect the secret"],
    }
    beat.update(overrides)
    return json.dumps(beat)


class FakeClient:
    """
    Scripted stand-in for GAIC. Each reply list is consumed in order; an
    exception instance in a list is raised instead of returned. When a list
    runs dry the default reply is used.
    """

    def __init__(self, json_replies: Optional[List[Any]] = None,
                 image_replies: Optional[List[Any]] = None,
                 text_replies: Optional[List[Any]] = None):
        self.json_replies = list(json_replies or [])
        self.image_replies = list(image_replies or [])
        self.text_replies = list(text_replies or [])
        self.calls: List[tuple] = []

    @staticmethod
    def _reply(queue: List[Any], default: Any) -> Any:
        reply = queue.pop(0) if queue else default
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def generate_json(self, prompt: str, model: str = "") -> str:
        self.calls.append(("json", prompt))
        return self._reply(self.json_replies, beat_json())

    async def generate_text(self, prompt: str, model: str = "") -> str:
        self.calls.append(("text", prompt))
        return self._reply(self.text_replies, "OK")

    async def generate_image(self, parts, aspect_ratio: str = "2:3", model: str = ""):
        self.calls.append(("image", parts, aspect_ratio))
        return self._reply(self.image_replies, image_response())

    def calls_of(self, kind: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == kind]


class FixedRandom(random.Random):
    """random() always returns the same value; choice() picks the first item."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value
        self.draws = 0

    def random(self) -> float:
        self.draws += 1
        return self.value

    def choice(self, seq):
        return seq[0]


HERO = Persona(data=b"hero-image", mime_type="image/jpeg", desc="The Main Hero")
FRIEND = Persona(data=b"friend-image", mime_type="image/jpeg", desc="The Sidekick/Rival")


def make_session(client: Optional[FakeClient] = None, rng: Optional[random.Random] = None,
                 hero: Optional[Persona] = HERO) -> Session:
    session = Session(client or FakeClient(), rng=rng or FixedRandom(0.9),
                      page_delay=0, transition_delay=0, log_size=200)
    session.hero = hero
    return session


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def session(client) -> Session:
    return make_session(client)
