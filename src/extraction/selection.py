"""
Builders that turn text captured from a note into task or event inputs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from planbook.models import EventCreate, TaskCreate, TaskPriority

MAX_SELECTION_TITLE = 140
DEFAULT_SELECTION_TASK_TITLE = "New Task"
DEFAULT_BLOCK_TITLE = "Scheduled block"

_TAG_RE = re.compile(r"#([A-Za-z0-9_]+)")
_LINK_RE = re.compile(r"\[\[([^\]]+)\]\]")


@dataclass(frozen=True)
class NormalizedText:
    text: str
    tags: List[str] = field(default_factory=list)
    links: List[str] = field(default_factory=list)


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def normalize_tags_and_links(content: str) -> NormalizedText:
    """Pull #tags and [[links]] out of content (deduplicated, first-seen order)."""
    content = content or ""
    # Links first so a '#' inside [[...]] is not read as a tag.
    links = _unique([m.strip() for m in _LINK_RE.findall(content)])
    stripped = _LINK_RE.sub(" ", content)
    tags = _unique(_TAG_RE.findall(stripped))
    text = re.sub(r"\s+", " ", _TAG_RE.sub(" ", stripped)).strip()
    return NormalizedText(text=text, tags=tags, links=links)


def build_task_from_selection(
    selection_text: str,
    source_file_id: str,
    source_file_title: Optional[str] = None,
    default_priority: TaskPriority = "med",
    due_date: Optional[datetime] = None,
) -> TaskCreate:
    raw = (selection_text or "").strip() or DEFAULT_SELECTION_TASK_TITLE
    parsed = normalize_tags_and_links(raw)
    return TaskCreate(
        title=parsed.text or DEFAULT_SELECTION_TASK_TITLE,
        description=f"Created from [[{source_file_title or source_file_id}]]",
        status="todo",
        priority=default_priority,
        due_date=due_date,
        tags=parsed.tags,
        # the source document id is always kept as a hard link
        links=_unique(parsed.links + [source_file_id]),
    )


def default_block_title(selection_text: Optional[str], source_file_title: Optional[str] = None) -> str:
    title = (selection_text or "").strip() or (source_file_title or "").strip() or DEFAULT_BLOCK_TITLE
    return title[:MAX_SELECTION_TITLE]


def build_event_from_selection(
    title: str,
    start: datetime,
    end: datetime,
    source_file_id: str,
    source_file_title: Optional[str] = None,
) -> EventCreate:
    parsed = normalize_tags_and_links(title)
    return EventCreate(
        title=parsed.text or title,
        description=f"From [[{source_file_title or source_file_id}]]",
        start=start,
        end=end,
        source="from_selection",
        tags=parsed.tags,
        meta={"source_file_id": source_file_id},
    )
