# diagnostics.py
import logging
from typing import Optional

from google.genai import types

from .config import CHECK_MODEL, CHECK_TIMEOUT, REFERENCE_TEST_TIMEOUT
from .envelope import guarded_call
from .errors import AuthError, GenerationError
from .images import synthetic_reference
from .render import fidelity_instruction
from .session import Session

logger = logging.getLogger(__name__)

PROBE_LEVEL_NAMES = {0: "High Fidelity", 1: "Safe Mode", 2: "Stylized"}


def _report(session: Session, err: GenerationError) -> None:
    if isinstance(err, AuthError):
        session.escalate_auth(err)
    else:
        session.log(f"!! CRITICAL ERROR: {err.message[:40]}...")
    session.emit("api_status", status="error", message=err.message)


async def test_connection(session: Session) -> bool:
    session.emit("api_status", status="loading")
    session.log("Testing Interdimensional Link...")
    try:
        await guarded_call(
            session.client.generate_text("Respond with 'OK' if you are ready to generate comics.",
                                         model=CHECK_MODEL),
            CHECK_TIMEOUT)
    except GenerationError as e:
        _report(session, e)
        return False
    session.log("Link established. Multiverse core online.")
    session.emit("api_status", status="success")
    return True


def build_probe_parts(session: Session, data: bytes, mime: str, level: int):
    s = session.settings
    prompt = f"STYLE: {s.style_era} comic. Fictional Character Art. "
    if level > 0:
        prompt += "SAFE MODE: Fictional illustration. Fantasy art. No photorealism. "
    prompt += "SCENE: " + ("Character in a dramatic pose" if level == 0 else "Character standing in a neutral pose") + ". "
    prompt += "INSTRUCTIONS: Create a fictional comic book illustration based on the REFERENCE character."
    prompt += fidelity_instruction(s.ref_strength, level)
    return [
        types.Part.from_text(text="REFERENCE CHARACTER 1 (HERO) - FICTIONAL CHARACTER SHEET:"),
        types.Part.from_bytes(data=data, mime_type=mime),
        types.Part.from_text(text=prompt),
    ]


async def test_reference_link(session: Session) -> Optional[int]:
    """
    Check that the hero reference survives the safety filters.
    Returns the first level (0-2) that produced candidates, or None.
    """
    session.emit("api_status", status="loading")
    session.log("Testing Multimodal Reference Link...")
    session.log(f"Diagnostic: Stress testing image injection (Strength: {session.settings.ref_strength})...")

    if session.hero is not None:
        data, mime = session.hero.data, session.hero.mime_type
        session.log("Using uploaded HERO image for stress test...")
    else:
        data, mime = synthetic_reference()
        session.log("No Hero uploaded. Using synthetic placeholder...")

    for level, name in PROBE_LEVEL_NAMES.items():
        session.log(f"Attempt {level + 1} ({name})...")
        try:
            res = await guarded_call(
                session.client.generate_image(build_probe_parts(session, data, mime, level), aspect_ratio="1:1"),
                REFERENCE_TEST_TIMEOUT)
        except AuthError as e:
            _report(session, e)
            return None
        except GenerationError as e:
            logger.warning("Reference probe level %s failed: %s", level, e)
            continue
        if getattr(res, "candidates", None):
            session.log(f"Success at Level {level} ({name}). Link Stable.")
            session.emit("api_status", status="success")
            return level

    session.log("Ref-Link Failed. The image triggers strict Safety Filters.")
    session.emit("api_status", status="error", message="Reference Image Rejected at all levels.")
    return None
