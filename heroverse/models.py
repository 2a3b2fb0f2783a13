# models.py
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import BACK_COVER_PAGE, CUSTOM_GENRE, DEFAULT_LANGUAGE, GENRES, LANGUAGES, TONES

FocusChar = Literal["hero", "friend", "other"]
PageType = Literal["cover", "story", "back_cover"]

FOCUS_CHARS = ("hero", "friend", "other")

# ------------------ DATA MODELS -------------------


class Persona(BaseModel):
    """A character's visual identity. Replaced wholesale, never patched."""
    model_config = ConfigDict(frozen=True)

    data: bytes
    mime_type: str = "image/jpeg"
    desc: str = ""


class Beat(BaseModel):
    model_config = ConfigDict(frozen=True)

    caption: str = ""
    dialogue: str = ""
    # always English, it drives the image model
    scene: str
    focus_char: FocusChar = "hero"
    choices: List[str] = Field(default_factory=list)

    @field_validator("scene")
    @classmethod
    def scene_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("scene must not be empty")
        return v


class ComicFace(BaseModel):
    """One page of the book as the reader sees it."""
    id: str
    page_index: int
    type: PageType
    narrative: Optional[Beat] = None
    image_url: Optional[str] = None
    is_loading: bool = True
    is_decision_page: bool = False
    choices: List[str] = Field(default_factory=list)
    resolved_choice: Optional[str] = None


class StorySettings(BaseModel):
    genre: str = GENRES[0]
    premise: str = ""
    tone: str = TONES[0]
    language: str = DEFAULT_LANGUAGE
    rich_mode: bool = True
    # 1=Loose, 2=Balanced, 3=Strict
    ref_strength: int = Field(default=2, ge=1, le=3)

    @property
    def is_custom(self) -> bool:
        return self.genre == CUSTOM_GENRE

    @property
    def style_era(self) -> str:
        return "Modern American" if self.is_custom else self.genre

    @property
    def language_name(self) -> str:
        return language_name(self.language)


# ------------------ HELPERS -----------------------


def language_name(code: str) -> str:
    for lang in LANGUAGES:
        if lang["code"] == code:
            return lang["name"]
    return "English"


def page_type_for(page_index: int) -> PageType:
    if page_index == 0:
        return "cover"
    if page_index == BACK_COVER_PAGE:
        return "back_cover"
    return "story"


def face_id_for(page_index: int) -> str:
    return "cover" if page_index == 0 else f"page-{page_index}"


def page_label(page_type: str, page_index: int) -> str:
    if page_type == "cover":
        return "Cover"
    if page_type == "back_cover":
        return "Back Cover"
    return f"Page {page_index}"
