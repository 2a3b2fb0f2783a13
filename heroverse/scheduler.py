# scheduler.py
"""
Issue-level scheduling: which pages to generate, in what order, and when.

Inside one batch pages run strictly one after another, because every beat
reads the history committed by the page before it. Separate batches may
overlap; the in-flight guard keeps any page number from being worked on
twice at the same time.
"""
import asyncio
import logging
from typing import List, Optional

from .beats import generate_summary
from .config import (BATCH_SIZE, INITIAL_PAGES, LOW_STAKES_GENRES, PREFETCH_PAGES, TONES,
                     TOTAL_PAGES)
from .errors import LaunchError
from .images import PlaceholderKind, create_placeholder_image
from .models import face_id_for
from .orchestrator import PageOrchestrator
from .session import Session

logger = logging.getLogger(__name__)


def tones_for_genre(genre: str) -> List[str]:
    if genre in LOW_STAKES_GENRES:
        return [t for t in TONES if any(k in t for k in ("CASUAL", "WHOLESOME", "QUIPPY"))]
    if genre == "Classic Horror":
        return [t for t in TONES if any(k in t for k in ("INNER-MONOLOGUE", "OPERATIC"))]
    return list(TONES)


class IssueScheduler:
    def __init__(self, session: Session, orchestrator: Optional[PageOrchestrator] = None):
        self.session = session
        self.orchestrator = orchestrator or PageOrchestrator(session)

    # ---- batches ----

    def reserve_pages(self, start_page: int, count: int) -> List[int]:
        """Claim the page numbers of a batch that nobody else is generating."""
        guard = self.session.in_flight
        pages = []
        for p in range(start_page, start_page + count):
            if p > TOTAL_PAGES or p in guard:
                continue
            face = self.session.page(p)
            if face is not None and not face.is_loading:
                continue
            pages.append(p)
        guard.update(pages)
        return pages

    async def generate_batch(self, start_page: int, count: int) -> List[int]:
        pages = self.reserve_pages(start_page, count)
        if not pages:
            return []
        # the guard set and epoch of this issue; a rollover swaps in fresh ones
        guard = self.session.in_flight
        epoch = self.session.epoch
        self.orchestrator.add_faces(pages)

        try:
            for page_num in pages:
                if self.session.epoch != epoch:
                    logger.info("Issue discarded, dropping rest of batch %s", pages)
                    break
                try:
                    await self.orchestrator.generate_page(page_num)
                except Exception:
                    logger.exception("Generation error for page %s", page_num)
                    self.orchestrator.commit_image(
                        face_id_for(page_num), epoch,
                        create_placeholder_image(PlaceholderKind.GENERATION_FAILED))
                guard.discard(page_num)
                await asyncio.sleep(self.session.page_delay)
        finally:
            guard.difference_update(pages)
        return pages

    def spawn_batch(self, start_page: int, count: int) -> asyncio.Task:
        return self.session.spawn(self.generate_batch(start_page, count))

    # ---- launch ----

    def check_launch(self) -> None:
        s = self.session
        if s.hero is None:
            raise LaunchError("A hero image is required before launch")
        if s.settings.is_custom and not s.settings.premise.strip():
            raise LaunchError("Please enter a custom story premise.")

    async def start_issue(self, new_issue: bool = False) -> None:
        """Cover, transition, gate pages, ready, then prefetch in the background."""
        s = self.session
        s.is_launching = True
        if new_issue:
            s.log(f"Preparing Issue #{s.issue_number}...")
        else:
            s.feed.clear()
            s.log("Initializing Multiverse Core...")

        self.orchestrator.discard_issue()
        s.in_flight.add(0)
        self.orchestrator.add_faces([0])
        try:
            await self.orchestrator.generate_page(0)
        finally:
            s.in_flight.discard(0)

        s.log("Engaging Hyper-Transition...")
        s.emit("transition")
        await asyncio.sleep(s.transition_delay)
        s.is_started = True

        s.log("Inking initial story sequence...")
        await self.generate_batch(1, INITIAL_PAGES)
        s.is_launching = False
        s.log("Ready to read!")
        s.emit("ready", issue=s.issue_number)

        self.spawn_batch(INITIAL_PAGES + 1, PREFETCH_PAGES)

    async def launch_story(self) -> None:
        self.check_launch()
        s = self.session
        s.log(f"Setting Genre: {s.settings.genre.upper()}")
        tone = s.rng.choice(tones_for_genre(s.settings.genre))
        s.settings = s.settings.model_copy(update={"tone": tone})
        s.log(f"Harmonizing Tone: {tone.split(' ')[0]}")

        s.issue_number = 1
        s.is_finale = False
        s.summary = ""
        await self.start_issue(new_issue=False)

    # ---- rollover ----

    async def archive_issue(self, finale: bool) -> None:
        """Summarize the finished issue and clear the book. Does not relaunch."""
        s = self.session
        summary = await generate_summary(s, s.story_history())
        s.summary += f"\n[Issue {s.issue_number} Summary]: {summary}"
        s.log("Issue archived.")

        s.issue_number += 1
        s.is_finale = finale
        self.orchestrator.discard_issue()

    async def next_issue(self, finale: bool = False) -> None:
        await self.archive_issue(finale)
        await self.start_issue(new_issue=True)

    # ---- reader input ----

    def choose(self, page_index: int, choice: str) -> Optional[asyncio.Task]:
        """Record a decision and queue the next batch without waiting for it."""
        s = self.session
        s.log(f"User made a choice: {choice}. Branching timeline...")
        self.orchestrator.resolve_choice(page_index, choice)
        next_page = s.max_page_index() + 1
        if next_page > TOTAL_PAGES:
            return None
        return self.spawn_batch(next_page, BATCH_SIZE)

    def reset(self) -> None:
        """Full application reset. Nothing is carried forward."""
        s = self.session
        self.orchestrator.discard_issue()
        s.feed.clear()
        s.prompts.clear()
        s.hero = None
        s.friend = None
        s.is_started = False
        s.is_launching = False
        s.issue_number = 1
        s.is_finale = False
        s.summary = ""
        s.emit("reset")
