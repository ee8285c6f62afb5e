"""
SpeakEasy — Conversation Documents

Stored conversations are markdown files with a YAML front-matter block:

    ---
    title: ...
    date: ...
    summary: ...
    ---
    # Summary
    ...
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np
import yaml

from ..core.models import MoodEntry, SessionRecord

_DELIMITER = "---"


def render_document(front_matter: Dict[str, Any], body: str) -> str:
    header = yaml.safe_dump(front_matter, sort_keys=False, allow_unicode=True).strip()
    return f"{_DELIMITER}\n{header}\n{_DELIMITER}\n\n{body.strip()}\n"


def parse_document(text: str) -> Tuple[Dict[str, Any], str]:
    """Split a document into (front matter, body). No front matter → ({}, text)."""
    if not text.startswith(_DELIMITER):
        return {}, text
    lines = text.splitlines(keepends=True)
    for i in range(1, len(lines)):
        if lines[i].strip() == _DELIMITER:
            header = "".join(lines[1:i])
            body = "".join(lines[i + 1:]).lstrip("\n")
            try:
                data = yaml.safe_load(header) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"invalid front matter: {e}") from e
            if not isinstance(data, dict):
                raise ValueError("front matter is not a mapping")
            return data, body
    return {}, text


def summarize_moods(moods: Sequence[MoodEntry]) -> Dict[str, Any]:
    """Per-label counts and mean confidence, plus the most frequent label."""
    if not moods:
        return {"dominant": None, "labels": {}}
    counts = Counter(m.emotion for m in moods)
    labels: Dict[str, Dict[str, float]] = {}
    for label, count in counts.most_common():
        conf = np.array([m.confidence for m in moods if m.emotion == label], dtype=float)
        labels[label] = {"count": count, "mean_confidence": round(float(conf.mean()), 1)}
    return {"dominant": counts.most_common(1)[0][0], "labels": labels}


def conversation_id_for(record: SessionRecord) -> str:
    stamp = datetime.fromtimestamp(record.end_time, tz=timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"conversation-{stamp}-{record.connection_id[:8]}"


def _mood_timeline(record: SessionRecord) -> List[str]:
    if not record.mood_history:
        return ["_No faces were detected during this session._"]
    lines = []
    for m in record.mood_history:
        offset = max(0.0, m.timestamp - record.start_time)
        lines.append(f"- {int(offset // 60):02d}:{int(offset % 60):02d} — {m.emotion} ({m.confidence:.1f}%)")
    return lines


def build_session_document(record: SessionRecord, summary: str) -> str:
    moods = summarize_moods(record.mood_history)
    started = datetime.fromtimestamp(record.start_time, tz=timezone.utc)
    front_matter = {
        "title": f"Conversation on {started.strftime('%b %d, %Y %H:%M')} UTC",
        "date": started.isoformat(),
        "duration_seconds": round(record.duration, 1),
        "frames_analyzed": record.frame_count,
        "dominant_emotion": moods["dominant"],
        "summary": summary.strip().split("\n", 1)[0][:280],
        "feedback": "",
    }
    body = "\n".join([
        "# Summary",
        "",
        summary.strip() or "_No summary available._",
        "",
        "# Mood Timeline",
        "",
        *_mood_timeline(record),
        "",
        "# Transcript",
        "",
        record.transcript or "_No speech was transcribed._",
    ])
    return render_document(front_matter, body)
