from __future__ import annotations

import random
from dataclasses import replace
import uuid

from .models import Theme


# (category, title, scale 1, scale 100)
_CATALOGUE: list[tuple[str, str, str, str]] = [
    ("food", "Popular foods", "Nobody eats it", "Everyone loves it"),
    ("food", "Spicy things", "Plain water", "Ghost pepper"),
    ("food", "Breakfast foods", "Worst start to a day", "Perfect morning"),
    ("animals", "Scary animals", "Hamster", "Great white shark"),
    ("animals", "Animals you want as a pet", "Never in my house", "Dream companion"),
    ("animals", "Big creatures", "Ant", "Blue whale"),
    ("life", "Things you take to a desert island", "Useless", "Life saver"),
    ("life", "Embarrassing moments", "Nobody noticed", "Move to another country"),
    ("life", "Gifts", "Regift immediately", "Cried with joy"),
    ("life", "Reasons to be late", "Totally unforgivable", "Completely fine"),
    ("life", "Household chores", "Fun", "Torture"),
    ("work", "Jobs", "Anyone can do it", "Only a genius can do it"),
    ("work", "Superpowers at the office", "Pointless", "Instant promotion"),
    ("fun", "Hobbies", "Boring", "Thrilling"),
    ("fun", "Movie genres", "Fall asleep", "Edge of my seat"),
    ("fun", "Vacation spots", "Stay home instead", "Once in a lifetime"),
    ("fun", "Party games", "Awkward silence", "Best night ever"),
    ("fun", "Things that are cool", "Cringe", "Legendary"),
    ("world", "Strong things", "Tissue paper", "Diamond"),
    ("world", "Heavy things", "Feather", "Mountain"),
    ("world", "Expensive things", "Free", "Priceless"),
    ("world", "Fast things", "Snail", "Speed of light"),
    ("world", "Loud sounds", "Whisper", "Rocket launch"),
    ("world", "Inventions", "Could live without", "Changed humanity"),
]

DEFAULT_THEMES: list[Theme] = [
    Theme(id=f"preset-{i}", category=cat, title=title, scale_min=lo, scale_max=hi)
    for i, (cat, title, lo, hi) in enumerate(_CATALOGUE, start=1)
]


def pick_themes(rng: random.Random, count: int, themes: list[Theme] | None = None) -> list[Theme]:
    pool = themes if themes is not None else DEFAULT_THEMES
    count = max(0, min(count, len(pool)))
    # Copies so a room can never edit the catalogue entries.
    return [replace(t) for t in rng.sample(pool, count)]


def custom_theme(title: str, scale_min: str, scale_max: str, max_length: int = 50) -> Theme:
    return Theme(
        id=uuid.uuid4().hex,
        category="Custom",
        title=title.strip()[:max_length],
        scale_min=(scale_min.strip() or "1")[:max_length],
        scale_max=(scale_max.strip() or "100")[:max_length],
    )
