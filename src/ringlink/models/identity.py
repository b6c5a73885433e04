"""
Site identity records and display defaults.

An [Identity][ringlink.models.identity.Identity] describes one site: the
local node's own profile (shared when it joins or rates in other rings)
and the base shape of every ring member and pending join request.
[WidgetSettings][ringlink.models.identity.WidgetSettings] holds the node's
display defaults for ring widgets.

Both are frozen dataclasses validated in ``__post_init__`` so an invalid
record never escapes its constructor.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from ._validation import validate_str_no_null, validate_str_not_empty, validate_url
from .constants import WidgetMode, WidgetTheme, WidgetWidth


if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True, slots=True)
class Identity:
    """Public profile of a site participating in rings.

    Attributes:
        url: Canonical site URL; the unique identity key within a ring.
        name: Human-readable site name.
        page_url: Page where the ring widget is displayed. Defaults to
            ``url`` when empty.
        image: Optional banner image URL (``""`` when absent).
        excerpt: Optional short description (``""`` when absent).

    Raises:
        ValueError: If ``url`` or ``page_url`` is not an absolute http(s)
            URL, ``image`` is neither empty nor a URL, or ``name`` is empty.
        TypeError: If any field is not a string.

    Examples:
        ```python
        site = Identity(url="https://a.example/", name="Site A")
        site.page_url   # 'https://a.example/'
        site.to_dict()  # {'url': ..., 'name': 'Site A', ...}
        ```
    """

    url: str
    name: str
    page_url: str = ""
    image: str = ""
    excerpt: str = ""

    def __post_init__(self) -> None:
        validate_url(self.url, "url")
        validate_str_not_empty(self.name, "name")
        if not self.page_url:
            object.__setattr__(self, "page_url", self.url)
        validate_url(self.page_url, "page_url")
        validate_url(self.image, "image", allow_empty=True)
        validate_str_no_null(self.excerpt, "excerpt")

    def to_dict(self) -> dict[str, str]:
        """Return the JSON-compatible wire shape."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Identity:
        """Build an identity from a wire or storage dict, ignoring unknown keys.

        Missing optional fields default to ``""``; ``None`` values are
        treated as missing.
        """
        return cls(
            url=data.get("url") or "",
            name=data.get("name") or "",
            page_url=data.get("page_url") or "",
            image=data.get("image") or "",
            excerpt=data.get("excerpt") or "",
        )


@dataclass(frozen=True, slots=True)
class WidgetSettings:
    """Display defaults applied to ring widgets unless overridden per call."""

    mode: WidgetMode = field(default=WidgetMode.CAROUSEL)
    theme: WidgetTheme = field(default=WidgetTheme.LIGHT)
    width: WidgetWidth = field(default=WidgetWidth.COMPACT)

    def __post_init__(self) -> None:
        # Coerce plain strings so values loaded from storage compare as enums
        object.__setattr__(self, "mode", WidgetMode(self.mode))
        object.__setattr__(self, "theme", WidgetTheme(self.theme))
        object.__setattr__(self, "width", WidgetWidth(self.width))

    def to_dict(self) -> dict[str, str]:
        return {"mode": self.mode.value, "theme": self.theme.value, "width": self.width.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WidgetSettings:
        """Build settings from a stored dict; missing keys take the defaults."""
        defaults = cls()
        return cls(
            mode=data.get("mode") or defaults.mode,
            theme=data.get("theme") or defaults.theme,
            width=data.get("width") or defaults.width,
        )
