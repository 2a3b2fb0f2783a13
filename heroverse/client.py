# client.py
from typing import Any, List, Optional

from google import genai
from google.genai import types

from .config import API_KEY, IMAGE_MODEL, TEXT_MODEL
from .errors import ConfigurationError

# Comic action trips the default filters constantly; every category is relaxed.
SAFETY_SETTINGS = [
    types.SafetySetting(category=category, threshold=types.HarmBlockThreshold.BLOCK_NONE)
    for category in (
        types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        types.HarmCategory.HARM_CATEGORY_CIVIC_INTEGRITY,
    )
]


def response_text(resp: Any) -> str:
    """Text of a response, falling back to joining the text parts by hand."""
    text = getattr(resp, "text", None)
    if text:
        return text
    out = []
    for c in getattr(resp, "candidates", None) or []:
        content = getattr(c, "content", None)
        for p in getattr(content, "parts", None) or []:
            if getattr(p, "text", None):
                out.append(p.text)
    return "\n".join(out).strip()


# ------------------ GENAI WRAPPER ----------------


class GAIC:
    """Async wrapper around the Gemini client. This is the network boundary."""

    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key or API_KEY
        if not api_key:
            raise ConfigurationError("Missing GEMINI_API_KEY in .env")
        self.client = genai.Client(api_key=api_key)

    async def generate_text(self, prompt: str, model: str = TEXT_MODEL) -> str:
        resp = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(safety_settings=SAFETY_SETTINGS),
        )
        return response_text(resp)

    # Structured output, returned raw; callers repair it
    async def generate_json(self, prompt: str, model: str = TEXT_MODEL) -> str:
        resp = await self.client.aio.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                safety_settings=SAFETY_SETTINGS,
            ),
        )
        return response_text(resp)

    async def generate_image(self, parts: List[types.Part], aspect_ratio: str = "2:3",
                             model: str = IMAGE_MODEL) -> types.GenerateContentResponse:
        """Returns the raw response so callers can inspect candidates and finish reasons."""
        return await self.client.aio.models.generate_content(
            model=model,
            contents=parts,
            config=types.GenerateContentConfig(
                image_config=types.ImageConfig(aspect_ratio=aspect_ratio),
                safety_settings=SAFETY_SETTINGS,
            ),
        )
