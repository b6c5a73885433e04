"""Pure selection helpers for ring widgets.

Rendering surfaces (carousel, live links, directory) share this logic:
cyclic navigation, a random pick that tries to avoid the viewer's own
site, star counts for an average rating, and the JSON view model served
by the local ``widget`` endpoint. Nothing here touches storage or the
network; callers pass member dicts as stored (hosted rings) or as
mirrored from the host (joined rings).
"""

from __future__ import annotations

import math
import random
from typing import TYPE_CHECKING, Any

from ringlink.core.exceptions import InvalidRequestError
from ringlink.models import (
    RATING_MAX,
    RATING_MIN,
    MemberStatus,
    WidgetMode,
    WidgetSettings,
    average_rating,
)


if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


RANDOM_RETRIES = 10


def next_index(length: int, current: int) -> int:
    """Index after *current*, wrapping to 0."""
    if length <= 0:
        raise ValueError("length must be positive")
    return (current + 1) % length


def prev_index(length: int, current: int) -> int:
    """Index before *current*, wrapping to the last member."""
    if length <= 0:
        raise ValueError("length must be positive")
    return (current - 1 + length) % length


def random_index(
    members: Sequence[Mapping[str, Any]],
    self_url: str,
    rng: random.Random | None = None,
) -> int:
    """Pick a uniform random index, redrawing up to 10 times while it lands on *self_url*.

    Avoidance is best effort: after the last redraw the drawn index is
    returned even if it is the viewer's own site. A single-member list
    returns 0 without redrawing.

    Raises:
        ValueError: If *members* is empty.
    """
    if not members:
        raise ValueError("cannot pick from an empty member list")
    draw = rng if rng is not None else random
    index = draw.randrange(len(members))
    if len(members) > 1:
        attempts = 0
        while members[index].get("url") == self_url and attempts < RANDOM_RETRIES:
            index = draw.randrange(len(members))
            attempts += 1
    return index


def star_counts(average: float) -> tuple[int, int, int]:
    """Split an average rating into ``(full, half, empty)`` star counts."""
    full = math.floor(average)
    half = 1 if average - full >= 0.5 else 0
    return full, half, RATING_MAX - full - half


def active_members(members: Sequence[Any]) -> list[dict[str, Any]]:
    """Drop dead members and entries that are not member dicts with a url."""
    return [
        dict(m)
        for m in members
        if isinstance(m, dict) and m.get("url") and m.get("status") != MemberStatus.DEAD
    ]


def start_index(members: Sequence[Mapping[str, Any]], self_url: str) -> int:
    """Carousel start position: the member after the viewer's own site (0 if absent)."""
    if not members:
        return 0
    current = next((i for i, m in enumerate(members) if m.get("url") == self_url), 0)
    return next_index(len(members), current)


def resolve_display(
    defaults: WidgetSettings,
    mode: str | None = None,
    theme: str | None = None,
    width: str | None = None,
) -> WidgetSettings:
    """Apply per-call overrides on top of the node's display defaults.

    Empty overrides keep the default.

    Raises:
        InvalidRequestError: If an override is not a known value.
    """
    try:
        return WidgetSettings(
            mode=mode or defaults.mode,
            theme=theme or defaults.theme,
            width=width or defaults.width,
        )
    except ValueError as e:
        raise InvalidRequestError(str(e)) from e


def _member_view(member: Mapping[str, Any]) -> dict[str, Any]:
    ratings = member.get("ratings")
    valid = {
        rater: v
        for rater, v in (ratings.items() if isinstance(ratings, dict) else ())
        if isinstance(v, int) and not isinstance(v, bool) and RATING_MIN <= v <= RATING_MAX
    }
    average = average_rating(valid)
    full, half, empty = star_counts(average)
    return {
        "url": member["url"],
        "name": member.get("name") or member["url"],
        "page_url": member.get("page_url") or member["url"],
        "image": member.get("image") or "",
        "excerpt": member.get("excerpt") or "",
        "average_rating": average,
        "stars": {"full": full, "half": half, "empty": empty},
    }


def build_widget(
    ring_id: str,
    ring_name: str,
    members: Sequence[Any],
    display: WidgetSettings,
    self_url: str,
) -> dict[str, Any]:
    """Build the JSON view model consumed by widget renderers.

    Dead members are excluded. ``start_index`` is the carousel position
    to show first (always 0 in directory mode). ``average_rating`` is 0.0
    for unrated members, which renderers leave undisplayed.
    """
    visible = active_members(members)
    start = 0 if display.mode is WidgetMode.DIRECTORY else start_index(visible, self_url)
    return {
        "ring_id": ring_id,
        "ring_name": ring_name,
        "mode": display.mode.value,
        "theme": display.theme.value,
        "width": display.width.value,
        "start_index": start,
        "count": len(visible),
        "members": [_member_view(m) for m in visible],
    }
