import asyncio
import json
import logging
import queue
import threading
from typing import Any, Dict, Generator, Optional

from flask import Flask, Response, jsonify, request

from .client import GAIC
from .config import GENRES, LANGUAGES, TONES
from .diagnostics import test_connection, test_reference_link
from .errors import LaunchError
from .images import normalize_upload
from .logger_config import setup_logging
from .models import Persona, StorySettings
from .scheduler import IssueScheduler
from .session import Session

logger = logging.getLogger(__name__)

PERSONA_ROLES = {"hero": "The Main Hero", "friend": "The Sidekick/Rival"}


class RunState:
    """Owns the asyncio loop thread the pipeline runs on and the SSE queue."""

    def __init__(self, client=None):
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self.loop.run_forever, daemon=True)
        self.thread.start()
        self.events: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.session = Session(client if client is not None else GAIC())
        self.session.subscribe(self.events.put)
        self.scheduler = IssueScheduler(self.session)

    def submit(self, coro) -> "asyncio.Future":
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def call(self, fn, *args):
        """Run a plain function on the loop thread and wait for its result."""
        async def runner():
            return fn(*args)
        return self.submit(runner()).result()


def serialize_face(face) -> Dict[str, Any]:
    data = face.model_dump(exclude={"narrative"})
    data["narrative"] = face.narrative.model_dump() if face.narrative else None
    return data


def snapshot(session: Session) -> Dict[str, Any]:
    """Reader-facing view of the book. Must run on the loop thread."""
    return {
        "issue": session.issue_number,
        "finale": session.is_finale,
        "launching": session.is_launching,
        "gate_ready": session.gate_ready(),
        "pages": [serialize_face(f) for f in session.ordered_pages()],
        "logs": list(session.feed),
    }


def update_settings(session: Session, data: Dict[str, Any]) -> StorySettings:
    session.settings = StorySettings(**{**session.settings.model_dump(), **data})
    return session.settings


def set_persona(session: Session, role: str, persona: Persona) -> None:
    setattr(session, role, persona)
    label = "Hero" if role == "hero" else "Sidekick/Rival"
    session.log(f"{label} identity confirmed.")


def create_app(state: Optional[RunState] = None) -> Flask:
    app = Flask(__name__, static_folder=None)
    state = state or RunState()
    app.config["RUN_STATE"] = state

    @app.route("/api/options")
    def api_options():
        return jsonify({"genres": GENRES, "tones": TONES, "languages": LANGUAGES})

    @app.route("/api/settings", methods=["GET", "POST"])
    def api_settings():
        if request.method == "POST":
            data = request.get_json(force=True) or {}
            try:
                settings = state.call(update_settings, state.session, data)
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
        else:
            settings = state.call(lambda: state.session.settings)
        return jsonify(settings.model_dump())

    @app.route("/api/upload/<role>", methods=["POST"])
    def api_upload(role: str):
        if role not in PERSONA_ROLES:
            return jsonify({"error": f"Unknown role '{role}'"}), 404
        if 'file' not in request.files:
            return jsonify({"error": "No file provided"}), 400
        file = request.files['file']
        if file.filename == '':
            return jsonify({"error": "No file selected"}), 400

        try:
            data, mime = normalize_upload(file.read())
        except OSError as e:
            return jsonify({"error": f"Failed to process image: {e}"}), 400

        persona = Persona(data=data, mime_type=mime, desc=PERSONA_ROLES[role])
        state.call(set_persona, state.session, role, persona)
        return jsonify({"success": True, "role": role})

    @app.route("/api/launch", methods=["POST"])
    def api_launch():
        try:
            state.call(state.scheduler.check_launch)
        except LaunchError as e:
            return jsonify({"error": str(e)}), 400
        state.submit(state.scheduler.launch_story())
        return jsonify({"success": True})

    @app.route("/api/choice", methods=["POST"])
    def api_choice():
        data = request.get_json(force=True) or {}
        page = data.get("page")
        choice = (data.get("choice") or "").strip()
        if not isinstance(page, int) or not choice:
            return jsonify({"error": "page and choice are required"}), 400
        state.call(state.scheduler.choose, page, choice)
        return jsonify({"success": True})

    @app.route("/api/next_issue", methods=["POST"])
    def api_next_issue():
        data = request.get_json(force=True) or {}
        state.submit(state.scheduler.next_issue(bool(data.get("finale", False))))
        return jsonify({"success": True, "issue": state.session.issue_number + 1})

    @app.route("/api/reset", methods=["POST"])
    def api_reset():
        state.call(state.scheduler.reset)
        return jsonify({"success": True})

    @app.route("/api/pages")
    def api_pages():
        return jsonify(state.call(snapshot, state.session))

    @app.route("/api/test_connection", methods=["POST"])
    def api_test_connection():
        ok = state.submit(test_connection(state.session)).result()
        return jsonify({"success": ok})

    @app.route("/api/test_reference", methods=["POST"])
    def api_test_reference():
        level = state.submit(test_reference_link(state.session)).result()
        return jsonify({"success": level is not None, "level": level})

    @app.route("/api/stream")
    def api_stream() -> Response:
        def gen() -> Generator[str, None, None]:
            yield "event: ping\n" "data: {}\n\n"
            while True:
                try:
                    evt = state.events.get(timeout=60)
                except queue.Empty:
                    yield "event: ping\n" "data: {}\n\n"
                    continue
                yield f"data: {json.dumps(evt)}\n\n"
        return Response(gen(), mimetype="text/event-stream")

    return app


def main():
    setup_logging()
    app = create_app()
    app.run(host="127.0.0.1", port=5001, threaded=True)


if __name__ == "__main__":
    main()
