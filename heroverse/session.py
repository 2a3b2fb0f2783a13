# session.py
import asyncio
import logging
import random
from typing import Any, Callable, Dict, List, Optional, Set

from .config import GATE_PAGE, LOG_FEED_SIZE, PAGE_DELAY_SECONDS, TRANSITION_DELAY_SECONDS
from .errors import AuthError
from .logger_config import LogFeed, PromptLogger
from .models import ComicFace, Persona, StorySettings

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]


class Session:
    """
    The single live session. Every orchestration call reads it at call time,
    so there is no second copy of any setting to fall out of sync.

    Pages and the in-flight guard are only mutated through PageOrchestrator
    and IssueScheduler.
    """

    def __init__(self, client, rng: Optional[random.Random] = None,
                 page_delay: float = PAGE_DELAY_SECONDS,
                 transition_delay: float = TRANSITION_DELAY_SECONDS,
                 log_size: int = LOG_FEED_SIZE):
        self.client = client
        self.rng = rng or random.Random()
        self.page_delay = page_delay
        self.transition_delay = transition_delay

        self.settings = StorySettings()
        self.hero: Optional[Persona] = None
        self.friend: Optional[Persona] = None

        self.issue_number = 1
        self.is_finale = False
        self.summary = ""

        self.pages: Dict[str, ComicFace] = {}
        self.in_flight: Set[int] = set()
        # bumped whenever the page collection is discarded
        self.epoch = 0

        self.is_launching = False
        self.is_started = False
        self.auth_failures = 0

        self.feed = LogFeed(log_size)
        self.prompts = PromptLogger()
        self.tasks: Set[asyncio.Task] = set()
        self.listeners: List[Listener] = []

    # ---- events ----

    def subscribe(self, listener: Listener) -> None:
        self.listeners.append(listener)

    def emit(self, event_type: str, **payload) -> None:
        event = {"type": event_type, **payload}
        for listener in list(self.listeners):
            listener(event)

    def log(self, message: str) -> None:
        entry = self.feed.add(message)
        self.emit("log", message=entry)

    def escalate_auth(self, err: AuthError) -> None:
        """Ask the user for a new credential, once per distinct failure."""
        if err.escalated:
            return
        err.escalated = True
        self.auth_failures += 1
        logger.error("Auth failure: %s", err.message)
        self.log(f"!! CRITICAL ERROR: {err.message[:40]}...")
        self.emit("auth_required", message=err.message)

    # ---- read-only views ----

    def ordered_pages(self) -> List[ComicFace]:
        return sorted(self.pages.values(), key=lambda f: f.page_index)

    def story_history(self) -> List[ComicFace]:
        return [f for f in self.ordered_pages() if f.type == "story"]

    def max_page_index(self) -> int:
        return max((f.page_index for f in self.pages.values()), default=0)

    def page(self, page_index: int) -> Optional[ComicFace]:
        for face in self.pages.values():
            if face.page_index == page_index:
                return face
        return None

    def gate_ready(self) -> bool:
        """True once the gate page has art, so the reader may open the book."""
        face = self.page(GATE_PAGE)
        return face is not None and bool(face.image_url)

    # ---- background work ----

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until no background batch is running."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks))
