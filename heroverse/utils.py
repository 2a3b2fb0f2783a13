# utils.py
import json
import re
from pathlib import Path
from typing import Any

# ------------------ PROMPTS -----------------------
PROMPTS_DIR = Path(__file__).parent / "prompts"


def load_prompt(name: str) -> str:
    p = PROMPTS_DIR / f"{name}.txt"
    if not p.exists():
        raise FileNotFoundError(f"Prompt file not found: {p}")
    return p.read_text(encoding="utf-8")


# ------------------ UTILITIES ---------------------


def fill(template: str, **kv: Any) -> str:
    """Replace only specific placeholders, leaving JSON braces alone."""
    out = template
    for k, v in kv.items():
        out = out.replace(f"{{{k}}}", str(v))
    return out


def slugify(text: str, fallback: str = "item") -> str:
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return text or fallback


def strip_code_fences(s: str) -> str:
    return s.replace("```json", "").replace("```", "").strip()


def first_json_block(s: str) -> str:
    # Find all potential JSON objects and return the largest valid one
    starts = [m.start() for m in re.finditer(r"\{", s)]
    best_chunk = None
    best_size = 0

    for i in starts:
        for j in range(len(s), i + 1, -1):
            chunk = s[i:j]
            try:
                json.loads(chunk)
            except ValueError:
                continue
            if len(chunk) > best_size:
                best_chunk = chunk
                best_size = len(chunk)
            break

    if best_chunk:
        return best_chunk
    raise ValueError("No valid JSON in model output")


def parse_json_object(raw: str) -> dict:
    """Parse a model's JSON answer, tolerating fences and surrounding chatter."""
    text = strip_code_fences(raw or "")
    try:
        parsed = json.loads(text or "{}")
    except ValueError:
        parsed = json.loads(first_json_block(text))
    if not isinstance(parsed, dict):
        raise ValueError("Model output is not a JSON object")
    return parsed
