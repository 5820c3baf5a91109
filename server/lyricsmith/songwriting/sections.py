# ─────────────────────────────────────────────────────────────────────────────
# Section Names — map human spellings to canonical lyric keys
# ─────────────────────────────────────────────────────────────────────────────

# Canonical keys, in the order a song usually presents them.
CANONICAL_SECTIONS: tuple[str, ...] = ("verse1", "verse2", "preChorus", "chorus", "bridge", "hook")

# Lower-case alias → canonical key. Intro/outro have no slot of their own and
# borrow the nearest one.
SECTION_ALIASES: dict[str, str] = {
    "verse": "verse1",
    "verse1": "verse1",
    "verse 1": "verse1",
    "verse2": "verse2",
    "verse 2": "verse2",
    "chorus": "chorus",
    "pre-chorus": "preChorus",
    "prechorus": "preChorus",
    "pre chorus": "preChorus",
    "bridge": "bridge",
    "hook": "hook",
    "intro": "verse1",
    "outro": "bridge",
}


def normalize_section(target: str) -> str:
    """Resolve a section name case-insensitively; unknown names pass through.

    >>> normalize_section("Verse 1")
    'verse1'
    >>> normalize_section("coda")
    'coda'
    """
    return SECTION_ALIASES.get(target.strip().lower(), target)
