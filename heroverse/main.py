# main.py
import asyncio
import json
import random
import string
import sys
from pathlib import Path
from typing import Optional

from .client import GAIC
from .config import TOTAL_PAGES
from .images import data_uri_to_bytes, normalize_upload
from .logger_config import setup_logging
from .models import Persona
from .scheduler import IssueScheduler
from .session import Session
from .utils import slugify

MIME_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg", "image/webp": "webp"}


def load_persona(path: Path, desc: str) -> Persona:
    data, mime = normalize_upload(path.read_bytes())
    return Persona(data=data, mime_type=mime, desc=desc)


async def read_through(scheduler: IssueScheduler) -> None:
    """Launch an issue and play it to the back cover, taking the first option at every decision."""
    session = scheduler.session
    await scheduler.launch_story()
    await session.drain()
    while True:
        pending = [f for f in session.story_history()
                   if f.is_decision_page and f.choices and not f.resolved_choice]
        if not pending:
            break
        scheduler.choose(pending[0].page_index, pending[0].choices[0])
        await session.drain()
    if session.max_page_index() < TOTAL_PAGES:
        await scheduler.generate_batch(session.max_page_index() + 1, TOTAL_PAGES)


def write_issue(session: Session, out_root: Path) -> Path:
    out_root.mkdir(parents=True, exist_ok=True)
    pages_dir = out_root / "pages"
    pages_dir.mkdir(exist_ok=True)

    manifest = {"issue": session.issue_number, "finale": session.is_finale,
                "settings": session.settings.model_dump(), "summary": session.summary, "pages": []}
    for face in session.ordered_pages():
        entry = {"index": face.page_index, "type": face.type, "file": None,
                 "narrative": face.narrative.model_dump() if face.narrative else None,
                 "choices": face.choices, "resolvedChoice": face.resolved_choice}
        if face.image_url:
            data, mime = data_uri_to_bytes(face.image_url)
            fname = f"page-{face.page_index:02d}.{MIME_EXTENSIONS.get(mime, 'png')}"
            (pages_dir / fname).write_bytes(data)
            entry["file"] = f"pages/{fname}"
        manifest["pages"].append(entry)

    (out_root / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    session.prompts.flush(out_root / "prompts_used.txt")
    return out_root


def run_issue(hero_path: Path, friend_path: Optional[Path], out_root: Path,
              genre: Optional[str] = None) -> Path:
    session = Session(GAIC())
    session.hero = load_persona(hero_path, "The Main Hero")
    if friend_path is not None:
        session.friend = load_persona(friend_path, "The Sidekick/Rival")
    if genre:
        session.settings = session.settings.model_copy(update={"genre": genre})

    scheduler = IssueScheduler(session)
    print(">> Generating issue...")
    asyncio.run(read_through(scheduler))
    for line in session.feed:
        print(f"   {line}")
    write_issue(session, out_root)
    print(f">> Done. Output at: {out_root}")
    return out_root


# ------------------ CLI -------------------------
if __name__ == "__main__":
    setup_logging()
    if len(sys.argv) < 2 or not Path(sys.argv[1]).exists():
        print("usage: python -m heroverse.main HERO_IMAGE [FRIEND_IMAGE]")
        sys.exit(1)

    hero = Path(sys.argv[1])
    friend = Path(sys.argv[2]) if len(sys.argv) > 2 and Path(sys.argv[2]).exists() else None
    run_id = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    out_dir = Path("output") / f"{slugify(hero.stem, 'hero')}-{run_id}"
    run_issue(hero, friend, out_dir)
