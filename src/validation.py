"""Field validators and normalizers for tasks, categories and tags.

Every function either returns the normalized value or raises a
ValidationError / LimitExceededError. None of them touch store state.
"""
from __future__ import annotations
import re
from datetime import date, datetime
from typing import Iterable, List, Optional

from errors import LimitExceededError, ValidationError

TITLE_MAX = 100
DESCRIPTION_MAX = 500
CATEGORY_NAME_MAX = 50
MAX_CATEGORIES = 20
TAG_MAX_LENGTH = 30
MAX_TAGS_PER_TASK = 10

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{6})$")


# -------------------- tasks --------------------
def validate_title(title: Optional[str]) -> str:
    if title is None or title == '' or not title.strip():
        raise ValidationError('Title is required', field='title')
    if len(title) > TITLE_MAX:
        raise ValidationError(f'Title must not exceed {TITLE_MAX} characters', field='title')
    return title


def validate_description(description: Optional[str]) -> str:
    if description is None:
        return ''
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError(f'Description must not exceed {DESCRIPTION_MAX} characters',
                              field='description')
    return description


def validate_due_date(due: date, today: date) -> date:
    """Reject days strictly before today; time of day is ignored."""
    if isinstance(due, datetime):
        due = due.date()
    if due < today:
        raise ValidationError('Due date cannot be in the past', field='due_date')
    return due


# -------------------- categories --------------------
def validate_category_name(name: Optional[str]) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError('Category name is required', field='name')
    if len(cleaned) > CATEGORY_NAME_MAX:
        raise ValidationError(f'Category name must not exceed {CATEGORY_NAME_MAX} characters',
                              field='name')
    return cleaned


def normalize_color(color: Optional[str]) -> str:
    """Return "#rrggbb" in lowercase; accepts the value with or without '#'."""
    raw = (color or '').strip()
    if not raw:
        raise ValidationError('Category color is required', field='color')
    match = HEX_COLOR_RE.match(raw)
    if not match:
        raise ValidationError('Category color must be a valid hex color', field='color')
    return '#' + match.group(1).lower()


# -------------------- tags --------------------
def tag_key(tag: str) -> str:
    """Identity used for every tag comparison."""
    return tag.strip().lower()


def normalize_tag(tag: Optional[str], empty_message: str = 'Tag name cannot be empty') -> str:
    """Trim and length-check a tag; casing is kept for storage."""
    cleaned = (tag or '').strip()
    if not cleaned:
        raise ValidationError(empty_message, field='tags')
    if len(cleaned) > TAG_MAX_LENGTH:
        raise ValidationError(f'Tag name must not exceed {TAG_MAX_LENGTH} characters', field='tags')
    return cleaned


def normalize_tag_list(tags: Iterable[str]) -> List[str]:
    """Normalize a full tag list: trim, drop case-insensitive repeats, cap at 10."""
    result: List[str] = []
    seen = set()
    for raw in tags:
        tag = normalize_tag(raw)
        key = tag.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(tag)
    if len(result) > MAX_TAGS_PER_TASK:
        raise LimitExceededError(f'Maximum {MAX_TAGS_PER_TASK} tags per task', field='tags')
    return result
