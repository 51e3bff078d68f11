# vox_smoke/sink.py
"""Append-only JSONL writer keyed by filename."""

import json
from pathlib import Path

SUMMARIES_FILE = "vox_call_summaries.jsonl"
EVENTS_FILE = "vox_events.jsonl"


class JsonlSink:
    """Writes one JSON object per line to files under a single output directory."""

    def __init__(self, out_dir: str | Path = "./out"):
        self.out_dir = Path(out_dir)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    def path(self, filename: str) -> Path:
        return self.out_dir / filename

    def append(self, filename: str, record: dict) -> None:
        line = json.dumps(record, ensure_ascii=False)
        with open(self.path(filename), "a", encoding="utf-8") as f:
            f.write(line + "\n")
