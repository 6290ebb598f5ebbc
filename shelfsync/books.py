"""Book file naming rules.

A book is known by its logical name ("Shopping") and stored under a
physical file name that adds the format extension ("Shopping.org").
Repositories only ever pick up files whose names match a supported format.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import InvalidBookNameError


class BookFormat(Enum):
    """Supported book formats, valued by their file extension."""

    ORG = "org"

    @property
    def extension(self) -> str:
        return self.value


# name.org, and name.org.txt for providers that insist on a text extension
_FILE_NAME_PATTERN = re.compile(r"^(?P<name>.+)\.(?P<ext>org)(?P<txt>\.txt)?$")


@dataclass(frozen=True)
class BookName:
    """A physical file name split into its logical name and format."""

    name: str
    file_name: str
    format: BookFormat


def _match(file_name: Optional[str]) -> Optional[re.Match]:
    if not file_name:
        return None
    return _FILE_NAME_PATTERN.match(file_name)


def is_supported_format_file_name(file_name: Optional[str]) -> bool:
    """Return True if ``file_name`` names a book in a supported format."""
    return _match(file_name) is not None


def from_file_name(file_name: Optional[str]) -> BookName:
    """Parse a physical file name.

    Raises:
        InvalidBookNameError: if the name is not in a supported format.
    """
    m = _match(file_name)
    if m is None:
        raise InvalidBookNameError(file_name)

    return BookName(
        name=m.group("name"),
        file_name=file_name,
        format=BookFormat(m.group("ext")),
    )


def file_name(name: str, fmt: BookFormat) -> str:
    """Compose the physical file name for a logical name in ``fmt``."""
    return f"{name}.{fmt.extension}"


__all__ = [
    "BookFormat",
    "BookName",
    "is_supported_format_file_name",
    "from_file_name",
    "file_name",
]
