# persona.py
import logging

from google.genai import types

from .config import PERSONA_TIMEOUT
from .envelope import guarded_call
from .errors import AuthError, GenericError
from .models import Persona
from .session import Session
from .utils import fill, load_prompt

logger = logging.getLogger(__name__)

PERSONA_PROMPT_TEMPLATE = load_prompt("persona")


def persona_style(session: Session) -> str:
    if session.settings.is_custom:
        return "Modern American comic book art"
    return f"{session.settings.genre} comic"


def sidekick_description(session: Session) -> str:
    if session.settings.is_custom:
        return "A fitting sidekick for this story"
    return f"Sidekick for {session.settings.genre} story."


async def generate_persona(session: Session, desc: str) -> Persona:
    """
    Draw a character sheet from a text description. One attempt only.
    Failures propagate (classified) so the caller can degrade the page.
    """
    session.log(f"Synthesizing character design: {desc}...")
    prompt = fill(PERSONA_PROMPT_TEMPLATE, style=persona_style(session), desc=desc)
    session.prompts.log("PERSONA_PROMPT", prompt)

    try:
        res = await guarded_call(
            session.client.generate_image([types.Part.from_text(text=prompt)], aspect_ratio="1:1"),
            PERSONA_TIMEOUT)
    except AuthError as e:
        session.escalate_auth(e)
        raise

    for candidate in (getattr(res, "candidates", None) or [])[:1]:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and getattr(inline, "data", None):
                session.log("Character materialized successfully.")
                return Persona(data=inline.data, mime_type=inline.mime_type or "image/jpeg", desc=desc)

    logger.warning("Persona generation returned no image for %r", desc)
    raise GenericError("Persona generation returned no image")
