"""
HTML → ChangeRecord extraction for the Untis-style substitution pages.

A page holds one ``table.subst`` per day. The tables are not nested inside
their day sections: the date sits in a bold element inside some earlier
sibling (usually a ``<p>``), so each table is matched to the nearest
preceding date label in document order.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import List, Optional

import structlog
from bs4 import BeautifulSoup, Tag

from vplan.schemas import ChangeRecord
from vplan.services.dates import has_date, resolve_day

log = structlog.get_logger(__name__)

BOLD_TAGS = ["b", "strong"]
PLACEHOLDER_RE = re.compile(r"Keine Vertretungen|nicht freigegeben", re.IGNORECASE)
CANCELLED_RE = re.compile(r"entfall", re.IGNORECASE)
CHANGED_RE = re.compile(r"geändert", re.IGNORECASE)
COLOR_RE = re.compile(r"background-color:\s*([^;]+)", re.IGNORECASE)
MIN_CELLS = 8


def clean(text: str) -> str:
    return text.replace("\xa0", " ").replace("&nbsp;", " ").strip()


def _label_in(node) -> Optional[str]:
    """Date label carried by ``node`` itself or, failing that, its last dated bold descendant."""
    if not isinstance(node, Tag):
        return None
    if node.name in BOLD_TAGS:
        text = node.get_text()
        if has_date(text):
            return text
    for bold in reversed(node.find_all(BOLD_TAGS)):
        text = bold.get_text()
        if has_date(text):
            return text
    return None


def find_day_label(table: Tag) -> Optional[str]:
    """
    Walk backwards over the preceding siblings of ``table``; when they run
    out, continue from the parent's position, up to the document root.
    """
    node: Optional[Tag] = table
    while node is not None:
        for sibling in node.previous_siblings:
            label = _label_in(sibling)
            if label:
                return label
        node = node.parent
    return None


def parse_color(cell: Tag) -> Optional[str]:
    m = COLOR_RE.search(cell.get("style") or "")
    return m.group(1).strip() if m else None


def parse_row(
    row: Tag,
    day: date,
    weekday: str,
    page: str,
    week_type: Optional[str],
    created_at: datetime,
) -> Optional[ChangeRecord]:
    if row.find("th") is not None:
        return None
    cells = row.find_all("td")
    if len(cells) < MIN_CELLS:
        return None

    classes, lesson, teacher, subject, original, room, change_type, note = (
        clean(c.get_text()) for c in cells[:MIN_CELLS]
    )
    return ChangeRecord(
        classes=[c.strip() for c in classes.split(",") if c.strip()],
        day=day,
        weekday=weekday,
        lesson=lesson,
        teacher=teacher or None,
        subject=subject or None,
        original_subject=original or None,
        room=room or None,
        change_type=change_type or None,
        note=note or None,
        week_type=week_type,
        source_page=page,
        color=parse_color(cells[0]),
        cancelled=bool(CANCELLED_RE.search(change_type) or CANCELLED_RE.search(row.get_text())),
        changed=bool(CHANGED_RE.search(change_type)),
        created_at=created_at,
    )


def parse_table(
    table: Tag,
    page: str,
    week_type: Optional[str] = None,
    today: Optional[date] = None,
    created_at: Optional[datetime] = None,
) -> List[ChangeRecord]:
    rows = table.select("tr.list")
    if not rows:
        return []
    if len(rows) == 1 and PLACEHOLDER_RE.search(rows[0].get_text()):
        return []

    label = find_day_label(table)
    resolved = resolve_day(label, today) if label else None
    if resolved is None:
        # Undated tables are dropped rather than stored under a placeholder day
        log.debug("parse.table.undated", page=page, label=label, rows=len(rows))
        return []

    created_at = created_at or datetime.now(timezone.utc)
    records = []
    for row in rows:
        record = parse_row(row, resolved.day, resolved.weekday, page, week_type, created_at)
        if record is not None:
            records.append(record)
    return records


def parse_page(html: str, page: str, today: Optional[date] = None) -> List[ChangeRecord]:
    soup = BeautifulSoup(html, "html.parser")
    title = soup.select_one("#vertretung .title")
    week_type = (title.get_text().strip() or None) if title else None
    created_at = datetime.now(timezone.utc)

    records: List[ChangeRecord] = []
    for table in soup.select("table.subst"):
        records.extend(parse_table(table, page, week_type, today, created_at))
    log.debug("parse.page", page=page, records=len(records), week_type=week_type)
    return records
