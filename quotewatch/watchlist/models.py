"""
Watchlist data models.
"""

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from quotewatch.errors import GroupValidationError

MAX_GROUP_COUNT = 10
MAX_GROUP_NAME_LENGTH = 10
DEFAULT_GROUP_COLOR = "#1890ff"

# Letters, digits and CJK ideographs only
_GROUP_NAME_PATTERN = re.compile(r"^[\u4e00-\u9fa5A-Za-z0-9]+$")


class SortType(str, Enum):
    """Automatic ordering of the watchlist."""

    DEFAULT = "default"
    RISE = "rise"
    FALL = "fall"


@dataclass
class WatchEntry:
    """One watched instrument."""

    code: str
    name: str = ""
    group_ids: set[str] = field(default_factory=set)
    manual_rank: int = 0


@dataclass
class Group:
    """User defined watchlist group."""

    name: str
    color: str = DEFAULT_GROUP_COLOR
    order: int = 0
    id: str = field(default_factory=lambda: f"group_{uuid.uuid4().hex[:12]}")


@dataclass
class SortState:
    """Current ordering mode and group filter."""

    sort_type: SortType = SortType.DEFAULT
    is_manual_sort: bool = False
    selected_group_id: Optional[str] = None


def normalize_code(code: str) -> str:
    """Normalize an instrument code for use as a key."""
    return code.strip().upper()


def validate_group_name(name: str) -> None:
    """
    Validate a group name.

    Raises:
        GroupValidationError: If the name is empty, too long or contains
            characters other than letters, digits and CJK ideographs
    """
    if not name or not name.strip():
        raise GroupValidationError("Group name cannot be empty")
    if len(name) > MAX_GROUP_NAME_LENGTH:
        raise GroupValidationError(
            f"Group name longer than {MAX_GROUP_NAME_LENGTH} characters: {name}"
        )
    if not _GROUP_NAME_PATTERN.match(name):
        raise GroupValidationError(f"Invalid characters in group name: {name}")
