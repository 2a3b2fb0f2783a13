# config.py
import os
from typing import Dict, List, Tuple

from dotenv import load_dotenv

# ------------------ ENV & CONFIG ------------------
load_dotenv()
API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")

# Models (override via env if your account uses different names)
TEXT_MODEL = os.getenv("TEXT_MODEL", "gemini-3-pro-image-preview")
IMAGE_MODEL = os.getenv("IMAGE_MODEL", "gemini-3-pro-image-preview")
# cheap model used only for the connection check
CHECK_MODEL = os.getenv("CHECK_MODEL", "gemini-3-flash-preview")

# Timeouts in seconds
IMAGE_TIMEOUT = float(os.getenv("IMAGE_TIMEOUT", "90"))
BEAT_TIMEOUT = float(os.getenv("BEAT_TIMEOUT", "30"))
PERSONA_TIMEOUT = float(os.getenv("PERSONA_TIMEOUT", "45"))
SUMMARY_TIMEOUT = float(os.getenv("SUMMARY_TIMEOUT", "20"))
CHECK_TIMEOUT = float(os.getenv("CHECK_TIMEOUT", "15"))
REFERENCE_TEST_TIMEOUT = float(os.getenv("REFERENCE_TEST_TIMEOUT", "45"))

# pause between pages of one batch, keeps us under upstream rate limits
PAGE_DELAY_SECONDS = float(os.getenv("PAGE_DELAY_SECONDS", "1.0"))
TRANSITION_DELAY_SECONDS = float(os.getenv("TRANSITION_DELAY_SECONDS", "1.1"))

LOG_FEED_SIZE = int(os.getenv("LOG_FEED_SIZE", "15"))
PRINT_PROMPTS = os.getenv("PRINT_PROMPTS", "0") == "1"

# uploads are downscaled to this to reduce photorealism safety triggers
MAX_UPLOAD_SIZE = int(os.getenv("MAX_UPLOAD_SIZE", "768"))
CO_STAR_FOCUS_CHANCE = float(os.getenv("CO_STAR_FOCUS_CHANCE", "0.6"))

# ------------------ BOOK LAYOUT -------------------
MAX_STORY_PAGES = 10
BACK_COVER_PAGE = 11
TOTAL_PAGES = BACK_COVER_PAGE
INITIAL_PAGES = 2
GATE_PAGE = 2
BATCH_SIZE = 6
PREFETCH_PAGES = 3
DECISION_PAGES: Tuple[int, ...] = (3,)

# ------------------ CATALOGUES --------------------
CUSTOM_GENRE = "Custom"

GENRES: List[str] = [
    "Classic Horror",
    "Superhero Action",
    "Dark Sci-Fi",
    "High Fantasy",
    "Neon Noir Detective",
    "Wasteland Apocalypse",
    "Lighthearted Comedy",
    "Teen Drama / Slice of Life",
    CUSTOM_GENRE,
]

# genres allowed to use technobabble vocabulary
JARGON_GENRES = ("Dark Sci-Fi", "Superhero Action", CUSTOM_GENRE)
# genres whose stakes stay social/emotional
LOW_STAKES_GENRES = ("Teen Drama / Slice of Life", "Lighthearted Comedy")

TONES: List[str] = [
    "ACTION-HEAVY (Short, punchy dialogue. Focus on kinetics.)",
    "INNER-MONOLOGUE (Heavy captions revealing thoughts.)",
    "QUIPPY (Banter-focused, witty back-and-forth.)",
    "OPERATIC (Grand, dramatic declarations and high stakes.)",
    "CASUAL (Natural, everyday conversation.)",
    "WHOLESOME (Warm, hopeful, kind-hearted.)",
]

LANGUAGES: List[Dict[str, str]] = [
    {"code": "en-US", "name": "English (US)"},
    {"code": "ja-JP", "name": "Japanese"},
    {"code": "es-MX", "name": "Spanish (Mexico)"},
    {"code": "fr-FR", "name": "French"},
    {"code": "de-DE", "name": "German"},
    {"code": "ko-KR", "name": "Korean"},
    {"code": "pt-BR", "name": "Portuguese (Brazil)"},
    {"code": "it-IT", "name": "Italian"},
    {"code": "zh-CN", "name": "Chinese (Simplified)"},
    {"code": "hi-IN", "name": "Hindi"},
]
DEFAULT_LANGUAGE = LANGUAGES[0]["code"]
