"""Room backgrounds and participant avatar colours."""

from __future__ import annotations

from pydantic import BaseModel


class Background(BaseModel):
    """A selectable room background video."""

    id: str
    name: str
    url: str


BACKGROUND_BASE_URL = "/storage/v1/object/public/backgrounds"

BACKGROUNDS: list[Background] = [
    Background(id=f"video-{n}", name=f"Video {n}", url=f"{BACKGROUND_BASE_URL}/video-{n}.mp4")
    for n in range(1, 6)
]

DEFAULT_BACKGROUND = BACKGROUNDS[0]

AVATAR_COLORS = [
    "#4CD964",  # green
    "#FF6B6B",  # red
    "#4DABF7",  # blue
    "#FFD93D",  # yellow
    "#9775FA",  # purple
    "#FF922B",  # orange
    "#F06595",  # pink
    "#20C997",  # teal
    "#69DB7C",  # light green
    "#748FFC",  # indigo
]


def get_background(background_id: str | None) -> Background:
    """Look up a background, falling back to the default for unknown ids."""
    for background in BACKGROUNDS:
        if background.id == background_id:
            return background
    return DEFAULT_BACKGROUND


def is_known_background(background_id: str) -> bool:
    return any(b.id == background_id for b in BACKGROUNDS)


def avatar_color(participant_id: str) -> str:
    """Pick a stable avatar colour for a participant id.

    Uses the classic ``hash * 31 + char`` string hash wrapped to a signed
    32-bit integer, so every client picks the same colour.
    """
    h = 0
    for ch in participant_id:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return AVATAR_COLORS[abs(h) % len(AVATAR_COLORS)]
