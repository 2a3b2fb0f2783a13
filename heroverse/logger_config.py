import logging
import logging.handlers
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from .config import LOG_FEED_SIZE, PRINT_PROMPTS

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_FILE = os.path.join(LOG_DIR, "heroverse.log")

logger = logging.getLogger("heroverse")


def setup_logging():
    """
    Configure the root logger for the CLI and the server.
    Logs go to the console and to a rotating file, in plain text.
    """
    os.makedirs(LOG_DIR, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )

    # drop handlers installed by basicConfig to avoid duplicate lines
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    logging.root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

    file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    logging.root.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logging.root.addHandler(console_handler)

    logging.captureWarnings(True)


# --- Simple prompt logger (logger + optional file) ---


class PromptLogger:
    def __init__(self, out_file: Optional[Path] = None):
        self.out_file = out_file
        self.lines: List[str] = []

    def log(self, title: str, content: str):
        block = f"\n===== {title} =====\n{content.strip()}\n"
        self.lines.append(block)
        if PRINT_PROMPTS:
            logger.info(block)
        else:
            logger.debug(block)

    def clear(self):
        self.lines = []

    def flush(self, out_file: Optional[Path] = None):
        target = out_file or self.out_file
        if target is None:
            raise ValueError("No output file for prompt log")
        target.write_text("".join(self.lines), encoding="utf-8")


# --- User-facing narration of the pipeline (capped) ---


class LogFeed:
    def __init__(self, size: int = LOG_FEED_SIZE):
        self.size = size
        self.entries: List[str] = []

    def add(self, message: str) -> str:
        logger.info(message)
        entry = f"[{time.strftime('%M:%S')}] {message}"
        self.entries = (self.entries + [entry])[-self.size:]
        return entry

    def clear(self):
        self.entries = []

    def __iter__(self):
        return iter(list(self.entries))

    def __len__(self):
        return len(self.entries)
