# render.py
"""
Illustration rendering with a safety fallback ladder.

Level 0  full prompt, reference images at the user's fidelity wording
Level 1  adds a fictional/fantasy, no-photorealism qualifier
Level 2  also neutralises violent vocabulary, stronger fictionalisation
Level 3  references dropped, characters described in text only

A level is only attempted after the previous one was safety-blocked or came
back empty. Any other failure ends the ladder at once. Whatever happens the
caller receives an embeddable data URI, real or placeholder.
"""
import logging
import re
from typing import Any, List, Optional

from google.genai import types

from .config import IMAGE_TIMEOUT
from .envelope import guarded_call
from .errors import AuthError, GenerationError, GenericError, SafetyBlockError
from .images import PlaceholderKind, create_placeholder_image, to_data_uri
from .models import Beat, page_label
from .session import Session

logger = logging.getLogger(__name__)

MAX_LEVEL = 3
PAGE_ASPECT_RATIO = "2:3"

VIOLENCE_RE = re.compile(
    r"\b(?:fight(?:s|ing)?|punch(?:es|ing|ed)?|kill(?:s|ing|ed)?|blood(?:y)?|attack(?:s|ing|ed)?|"
    r"shoot(?:s|ing)?|battle(?:s)?|wars?|weapons?|corpses?|violence|injur(?:y|ies)|death|dead)\b",
    re.IGNORECASE,
)

FALLBACK_MESSAGES = {
    1: "Scene intense. Softening visuals",
    2: "Retrying with stronger styling",
    3: "Visual link unstable. Using textual reconstruction",
}


def soften_scene(scene: str) -> str:
    return VIOLENCE_RE.sub("confrontation", scene)


def fidelity_instruction(ref_strength: int, level: int) -> str:
    if ref_strength == 3:
        text = (" (Use these REFERENCES strictly. Maintain character consistency and facial features "
                "as much as possible while applying the comic style).")
    elif ref_strength == 1:
        text = (" (Loosely inspired by the references. Create a new character with similar costume "
                "vibes but unique features).")
    else:
        text = (" (Use these COSTUME REFERENCES to design the fictional characters. Do NOT generate a "
                "photorealistic replica. Stylize heavily).")
    # safety retries override the user's fidelity choice
    if level == 1:
        text += " TRANSFORM THE CHARACTER: Alter features slightly to fit the artistic style. Fictionalize the identity."
    elif level >= 2:
        text += (" TRANSFORM THE CHARACTER: Heavily stylize and alter features. Treat the references as costume "
                 "and color guides only. Fictionalize the identity completely.")
    return text


def build_image_prompt(session: Session, beat: Beat, page_type: str, level: int) -> str:
    s = session.settings
    text = f"STYLE: {s.style_era} comic book art. Fictional Character Art. "
    if level > 0:
        text += "SAFE MODE: Fictional illustration. Fantasy art. No photorealism. "

    if page_type == "cover":
        title = "THE FINALE" if session.is_finale else f"ISSUE #{session.issue_number}"
        text += (f'TYPE: Comic Book Cover. TITLE: "INFINITE HEROES {title}" '
                 f"(OR LOCALIZED TRANSLATION IN {s.language_name.upper()}). ")
        if level > 0:
            text += "Main visual: Character Portrait of [HERO]. Standing Pose. Masterpiece."
        else:
            text += "Main visual: Dynamic action shot of [HERO]."
    elif page_type == "back_cover":
        next_text = "THE END" if session.is_finale else "NEXT ISSUE SOON"
        text += f'TYPE: Comic Back Cover. FULL PAGE VERTICAL ART. Dramatic teaser. Text: "{next_text}".'
    else:
        scene = beat.scene or f"A scene featuring the {s.genre} style"
        if level >= 2:
            scene = soften_scene(scene)
        text += "TYPE: Vertical comic panel. "
        text += f"SCENE: {scene}. "
        text += "INSTRUCTIONS: Create a fictional comic book illustration. Artistic interpretation. "
        if beat.caption:
            text += f' INCLUDE CAPTION BOX: "{beat.caption}"'
        if beat.dialogue:
            text += f' INCLUDE SPEECH BUBBLE: "{beat.dialogue}"'
    return text


def build_image_parts(session: Session, beat: Beat, page_type: str, level: int) -> List[types.Part]:
    parts: List[types.Part] = []
    hero, friend = session.hero, session.friend
    use_refs = level < MAX_LEVEL and hero is not None and bool(hero.data)

    if use_refs:
        # interleave labels with images so the model reads them as character sheets
        parts.append(types.Part.from_text(text="REFERENCE CHARACTER 1 (HERO) - FICTIONAL CHARACTER SHEET:"))
        parts.append(types.Part.from_bytes(data=hero.data, mime_type=hero.mime_type))
        if friend is not None and friend.data:
            parts.append(types.Part.from_text(text="REFERENCE CHARACTER 2 (CO-STAR) - FICTIONAL CHARACTER SHEET:"))
            parts.append(types.Part.from_bytes(data=friend.data, mime_type=friend.mime_type))
        prompt = build_image_prompt(session, beat, page_type, level)
        prompt += fidelity_instruction(session.settings.ref_strength, level)
        parts.append(types.Part.from_text(text=prompt))
    else:
        desc = ""
        if hero is not None and hero.desc:
            desc += f" HERO: {hero.desc}."
        if friend is not None and friend.desc:
            desc += f" CO-STAR: {friend.desc}."
        suffix = " Fictional characters. Generic superhero features. High contrast comic art."
        parts.append(types.Part.from_text(text=build_image_prompt(session, beat, page_type, level) + desc + suffix))
    return parts


def _finish_reason(candidate: Any) -> Optional[str]:
    reason = getattr(candidate, "finish_reason", None)
    if reason is None:
        return None
    return str(getattr(reason, "value", reason))


def extract_image(response: Any) -> str:
    """Data URI of the first candidate's image, or the matching classified error."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        raise SafetyBlockError("Safety Block: Content Filtered")
    first = candidates[0]
    content = getattr(first, "content", None)
    parts = getattr(content, "parts", None) or []

    for part in parts:
        inline = getattr(part, "inline_data", None)
        if inline is not None and getattr(inline, "data", None):
            return to_data_uri(inline.data, inline.mime_type or "image/png")

    for part in parts:
        if getattr(part, "text", None):
            raise SafetyBlockError(f"Model Refused: {part.text[:100]}...")

    reason = _finish_reason(first)
    if reason and reason != "STOP":
        raise SafetyBlockError(f"Generation stopped: finish reason {reason}")

    raise GenericError("No image data returned from API (Unknown Structure)")


async def render_attempt(session: Session, beat: Beat, page_type: str, level: int) -> str:
    parts = build_image_parts(session, beat, page_type, level)
    session.prompts.log(f"IMAGE_PROMPT [{page_type} L{level}]", parts[-1].text or "")
    response = await guarded_call(
        session.client.generate_image(parts, aspect_ratio=PAGE_ASPECT_RATIO), IMAGE_TIMEOUT)
    return extract_image(response)


async def generate_image(session: Session, beat: Beat, page_type: str, page_num: int) -> str:
    label = page_label(page_type, page_num)
    session.log(f"Rendering visual assets for {label}...")

    try:
        for level in range(MAX_LEVEL + 1):
            if level > 0:
                session.log(f"{FALLBACK_MESSAGES[level]} for {label} (fallback level {level})...")
            try:
                url = await render_attempt(session, beat, page_type, level)
            except SafetyBlockError as e:
                logger.warning("Safety block for %s at level %s: %s", label, level, e)
                if level == MAX_LEVEL:
                    raise
                continue
            session.log(f"{label} successfully inked.")
            return url
    except AuthError as e:
        session.escalate_auth(e)
        return create_placeholder_image(PlaceholderKind.AUTH_ERROR)
    except SafetyBlockError as e:
        logger.warning("Safety/Filter triggered for %s: %s", label, e)
        session.log(f"!! Content Filtered for {label}")
        return create_placeholder_image(PlaceholderKind.CONTENT_FILTERED)
    except GenerationError as e:
        logger.error("Image generation failed for %s: %s", label, e)
        session.log(f"!! Image Gen Failed for {label}: {e.message[:30]}...")
        return create_placeholder_image(PlaceholderKind.GENERATION_FAILED)
