# beats.py
"""
Narrative beats: one call to the text model per story page.

The prompt is rebuilt for every page from the committed history, so each
beat reacts to everything already on the page collection, including the
reader's choices. Whatever the model sends back is repaired into a valid
Beat; a failed call yields a default beat instead of an exception.
"""
import logging
import re
from typing import List, Optional, Tuple

from .config import (BEAT_TIMEOUT, CO_STAR_FOCUS_CHANCE, JARGON_GENRES, LOW_STAKES_GENRES,
                     MAX_STORY_PAGES, SUMMARY_TIMEOUT)
from .envelope import guarded_call
from .errors import AuthError, GenerationError
from .models import FOCUS_CHARS, Beat, ComicFace
from .session import Session
from .utils import fill, load_prompt, parse_json_object

logger = logging.getLogger(__name__)

BEAT_PROMPT_TEMPLATE = load_prompt("beat")
GUARDRAILS_TEMPLATE = load_prompt("guardrails")
SUMMARY_PROMPT_TEMPLATE = load_prompt("summary")

DEFAULT_CHOICES = ["Option A", "Option B"]

# (caption, dialogue) word ceilings
RICH_WORD_LIMITS = (35, 30)
PLAIN_WORD_LIMITS = (15, 12)

# "NARRATOR: text", "Old Man Joe: text"; a clock like 10:30 is left alone
SPEAKER_LABEL_RE = re.compile(r"^[\w\-]+(?:\s[\w\-]+){0,2}:\s+")
QUOTES_RE = re.compile(r"[\"“”„«»]")


def relevant_history(history: List[ComicFace], page_num: int) -> List[ComicFace]:
    """Committed story pages before page_num, in reading order."""
    return sorted(
        (p for p in history if p.type == "story" and p.narrative and p.page_index < page_num),
        key=lambda p: p.page_index,
    )


def format_history(pages: List[ComicFace]) -> str:
    lines = []
    for p in pages:
        beat = p.narrative
        line = (f'[Page {p.page_index}] [Focus: {beat.focus_char}] (Caption: "{beat.caption}") '
                f'(Dialogue: "{beat.dialogue}") (Scene: {beat.scene})')
        if p.resolved_choice:
            line += f' -> USER CHOICE: "{p.resolved_choice}"'
        lines.append(line)
    return "\n".join(lines)


def narrative_stage(page_num: int, is_decision: bool, is_finale: bool) -> str:
    if page_num == MAX_STORY_PAGES:
        if is_finale:
            return "FINAL PAGE OF THE SERIES. CONCLUSIVE ENDING. End with 'THE END'. Do NOT leave a cliffhanger."
        return ("FINAL PAGE OF THIS ISSUE. KARMIC CLIFFHANGER REQUIRED. "
                "Text must end with 'TO BE CONTINUED...' (or localized equivalent).")
    if is_decision:
        return ("End with a PSYCHOLOGICAL choice about VALUES, RELATIONSHIPS, or RISK. "
                "(e.g., Truth vs. Safety, Forgive vs. Avenge). "
                "The options must NOT be simple physical actions like 'Go Left'.")
    if page_num == 1:
        if is_finale:
            return "THE BEGINNING OF THE END. Establish the final conflict immediately."
        return "INCITING INCIDENT. An event disrupts the status quo. Establish the genre's intended mood."
    if page_num <= 4:
        return ("RISING ACTION. The heroes engage with the new situation. "
                "Focus on dialogue, character dynamics, and initial challenges.")
    if page_num <= 8:
        return "COMPLICATION. A twist occurs! A secret is revealed, a misunderstanding deepens, or the path is blocked."
    return "CLIMAX. The confrontation with the main conflict."


def build_guardrails(genre: str) -> str:
    if genre in JARGON_GENRES:
        jargon_rule = "1. Genre-appropriate technical vocabulary is allowed."
    else:
        jargon_rule = ('1. DO NOT use technical jargon like "Quantum", "Timeline", "Portal", '
                       '"Multiverse", or "Singularity".')
    if genre in LOW_STAKES_GENRES:
        stakes_rule = ("2. The stakes must be SOCIAL, EMOTIONAL, or PERSONAL (e.g., a rumor, a competition, "
                       "a broken promise, being late, embarrassing oneself). Do NOT make it life-or-death. "
                       "Keep it grounded.")
    else:
        stakes_rule = "2. Stakes may escalate as the genre demands."
    return fill(GUARDRAILS_TEMPLATE, jargon_rule=jargon_rule, stakes_rule=stakes_rule)


def core_driver(session: Session) -> str:
    s = session.settings
    if s.is_custom:
        premise = s.premise.strip() or "A totally unique, unpredictable adventure"
        return f"STORY PREMISE: {premise}. (Follow this premise strictly over standard genre tropes)."
    return f"GENRE: {s.genre}. TONE: {s.tone}."


def co_star_directive(session: Session, last_focus: str) -> Tuple[str, bool]:
    """Describe the co-star for the prompt; True when this beat must focus on them."""
    if session.friend is None:
        return "Not yet introduced.", False
    text = "ACTIVE and PRESENT (User Provided)."
    if last_focus != "friend" and session.rng.random() < CO_STAR_FOCUS_CHANCE:
        return text + " MANDATORY: FOCUS ON THE CO-STAR FOR THIS PANEL.", True
    return text + " Ensure they are woven into the scene even if not the main focus.", False


def word_limits(rich_mode: bool) -> Tuple[int, int]:
    return RICH_WORD_LIMITS if rich_mode else PLAIN_WORD_LIMITS


def build_beat_prompt(session: Session, history: List[ComicFace], page_num: int,
                      is_decision: bool, friend_instruction: str) -> str:
    s = session.settings
    lang = s.language_name
    driver = core_driver(session)

    story_context = ""
    if session.issue_number > 1 and session.summary:
        story_context += f"PREVIOUS ISSUES RECAP: {session.summary}\n"
    history_text = format_history(relevant_history(history, page_num))
    story_context += f"CURRENT ISSUE ({session.issue_number}): {history_text or 'Start of this issue.'}"

    instruction = (f"Continue the story. ALL OUTPUT TEXT (Captions, Dialogue, Choices) MUST BE IN {lang.upper()}. "
                   f"{driver} {build_guardrails(s.genre)}")
    if session.is_finale:
        instruction += " IMPORTANT: THIS IS THE GRAND FINALE ISSUE. You must resolve all major plot lines."
    if s.rich_mode:
        instruction += (" RICH/NOVEL MODE ENABLED. Prioritize deeper character thoughts, descriptive captions, "
                        "and meaningful dialogue exchanges over short punchlines.")
    instruction += " " + narrative_stage(page_num, is_decision, session.is_finale)

    cap_words, dia_words = word_limits(s.rich_mode)
    if s.rich_mode:
        caption_limit = f"max {cap_words} words. Detailed narration or internal monologue"
        dialogue_limit = f"max {dia_words} words. Rich, character-driven speech"
    else:
        caption_limit = f"max {cap_words} words"
        dialogue_limit = f"max {dia_words} words"

    return fill(
        BEAT_PROMPT_TEMPLATE,
        page_num=page_num,
        max_pages=MAX_STORY_PAGES,
        issue_number=session.issue_number,
        language=lang,
        core_driver=driver,
        friend_instruction=friend_instruction,
        story_context=story_context,
        previous_page=page_num - 1,
        instruction=instruction,
        caption_limit=caption_limit,
        dialogue_limit=dialogue_limit,
    )


def _clean_text(value) -> str:
    if not isinstance(value, str):
        return ""
    return SPEAKER_LABEL_RE.sub("", value.strip()).strip()


def repair_beat(parsed: dict, page_num: int, is_decision: bool, genre: str) -> Beat:
    """Coerce whatever the model returned into a valid Beat. Text is kept whole."""
    caption = _clean_text(parsed.get("caption"))
    dialogue = _clean_text(parsed.get("dialogue"))
    dialogue = QUOTES_RE.sub("", dialogue).strip("' ").strip()

    focus = parsed.get("focus_char")
    if focus not in FOCUS_CHARS:
        focus = "hero"

    choices: List[str] = []
    if is_decision:
        raw = parsed.get("choices")
        if isinstance(raw, list):
            choices = [str(c).strip() for c in raw if str(c).strip()]
        if len(choices) < 2:
            choices = choices + DEFAULT_CHOICES[len(choices):]

    scene = parsed.get("scene")
    if not isinstance(scene, str) or not scene.strip():
        scene = f"A dramatic scene in the style of {genre}. The characters react to the situation."

    return Beat(caption=caption, dialogue=dialogue, scene=scene, focus_char=focus, choices=choices)


def default_beat(page_num: int, is_decision: bool) -> Beat:
    return Beat(
        caption="It began..." if page_num == 1 else "...",
        scene=f"Generic scene for page {page_num}.",
        focus_char="hero",
        choices=list(DEFAULT_CHOICES) if is_decision else [],
    )


async def generate_beat(session: Session, history: List[ComicFace], page_num: int,
                        is_decision: bool) -> Beat:
    session.log(f"Drafting narrative arc for Page {page_num}...")

    last: Optional[Beat] = None
    prior = relevant_history(history, page_num)
    if prior:
        last = prior[-1].narrative
    friend_instruction, force_friend = co_star_directive(session, last.focus_char if last else "none")

    prompt = build_beat_prompt(session, history, page_num, is_decision, friend_instruction)
    session.prompts.log(f"BEAT_PROMPT [Page {page_num}]", prompt)

    try:
        raw = await guarded_call(session.client.generate_json(prompt), BEAT_TIMEOUT)
        session.prompts.log(f"BEAT_RESPONSE [Page {page_num}]", raw or "")
        parsed = parse_json_object(raw)
    except AuthError as e:
        session.escalate_auth(e)
        return default_beat(page_num, is_decision)
    except (GenerationError, ValueError) as e:
        logger.warning("Beat generation failed for page %s: %s", page_num, e)
        session.log(f"!! Script Gen Failed for Page {page_num}. Using default.")
        return default_beat(page_num, is_decision)

    beat = repair_beat(parsed, page_num, is_decision, session.settings.genre)
    if force_friend and beat.focus_char != "friend":
        beat = beat.model_copy(update={"focus_char": "friend"})
    session.log(f"Script for Page {page_num} finalized.")
    return beat


async def generate_summary(session: Session, history: List[ComicFace]) -> str:
    """Three-sentence recap of an issue. Never fails."""
    session.log("Archiving narrative thread...")
    text = " ".join(
        f"[Page {p.page_index}] {p.narrative.caption} {p.narrative.dialogue} (Scene: {p.narrative.scene})"
        for p in history if p.narrative
    )
    if not text:
        return "The story begins."

    prompt = fill(SUMMARY_PROMPT_TEMPLATE, text=text)
    session.prompts.log("SUMMARY_PROMPT", prompt)
    try:
        summary = await guarded_call(session.client.generate_text(prompt), SUMMARY_TIMEOUT)
    except AuthError as e:
        session.escalate_auth(e)
        return "The story continues..."
    except GenerationError as e:
        logger.warning("Summary generation failed: %s", e)
        return "The story continues..."
    return (summary or "").strip() or "To be continued..."
