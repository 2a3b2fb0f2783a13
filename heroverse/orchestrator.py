# orchestrator.py
import logging
from typing import Iterable, List, Optional

from .beats import generate_beat
from .config import DECISION_PAGES
from .errors import GenerationError
from .models import Beat, ComicFace, face_id_for, page_type_for
from .persona import generate_persona, sidekick_description
from .render import generate_image
from .session import Session

logger = logging.getLogger(__name__)

COVER_BEAT = Beat(scene="Comic book cover featuring the hero", focus_char="hero")
BACK_COVER_BEAT = Beat(scene="Thematic teaser image", focus_char="other")


class PageOrchestrator:
    """
    Runs one page through beat -> optional persona backfill -> image, and owns
    every write to the session's page collection.

    Writes are read-modify-write on a single face id and carry the issue epoch
    they were started under; writes from a discarded issue are dropped.
    """

    def __init__(self, session: Session):
        self.session = session

    # ---- commits ----

    def add_faces(self, page_indexes: Iterable[int]) -> List[ComicFace]:
        added = []
        for page_index in page_indexes:
            face_id = face_id_for(page_index)
            if face_id in self.session.pages:
                continue
            face = ComicFace(id=face_id, page_index=page_index, type=page_type_for(page_index))
            self.session.pages[face_id] = face
            added.append(face)
        if added:
            self.session.emit("pages_added", pages=[f.page_index for f in added])
        return added

    def commit(self, face_id: str, epoch: int, **updates) -> Optional[ComicFace]:
        if epoch != self.session.epoch:
            logger.info("Dropping stale update for %s from epoch %s", face_id, epoch)
            return None
        face = self.session.pages.get(face_id)
        if face is None:
            return None
        face = face.model_copy(update=updates)
        self.session.pages[face_id] = face
        self.session.emit("page", page=face.page_index, fields=sorted(updates))
        return face

    def commit_beat(self, face_id: str, epoch: int, beat: Beat, is_decision: bool) -> Optional[ComicFace]:
        return self.commit(face_id, epoch, narrative=beat, choices=list(beat.choices),
                           is_decision_page=is_decision)

    def commit_image(self, face_id: str, epoch: int, image_url: str) -> Optional[ComicFace]:
        face = self.session.pages.get(face_id)
        # a placeholder already landed; a late result must not replace it
        if face is None or not face.is_loading:
            return None
        return self.commit(face_id, epoch, image_url=image_url, is_loading=False)

    def resolve_choice(self, page_index: int, choice: str) -> Optional[ComicFace]:
        return self.commit(face_id_for(page_index), self.session.epoch, resolved_choice=choice)

    def discard_issue(self) -> None:
        """Throw away the whole page collection and in-flight guard for a new book."""
        self.session.pages = {}
        self.session.in_flight = set()
        self.session.epoch += 1

    # ---- one page ----

    async def make_beat(self, page_num: int, page_type: str, is_decision: bool) -> Beat:
        if page_type == "cover":
            return COVER_BEAT
        if page_type == "back_cover":
            return BACK_COVER_BEAT
        return await generate_beat(self.session, self.session.story_history(), page_num, is_decision)

    async def backfill_persona(self, beat: Beat, page_type: str) -> Beat:
        session = self.session
        if beat.focus_char != "friend" or session.friend is not None or page_type != "story":
            return beat
        try:
            session.friend = await generate_persona(session, sidekick_description(session))
        except GenerationError as e:
            logger.warning("Co-star synthesis failed, page continues without them: %s", e)
            return beat.model_copy(update={"focus_char": "other"})
        return beat

    async def generate_page(self, page_num: int) -> Optional[ComicFace]:
        session = self.session
        epoch = session.epoch
        face_id = face_id_for(page_num)
        page_type = page_type_for(page_num)
        is_decision = page_num in DECISION_PAGES

        beat = await self.make_beat(page_num, page_type, is_decision)
        # a page from a discarded issue must not pick the new issue's co-star
        if epoch != session.epoch:
            return None
        beat = await self.backfill_persona(beat, page_type)
        if self.commit_beat(face_id, epoch, beat, is_decision) is None:
            return None

        url = await generate_image(session, beat, page_type, page_num)
        return self.commit_image(face_id, epoch, url)
