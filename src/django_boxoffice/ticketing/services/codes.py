"""Redemption code and display label helpers."""

import secrets

from django_boxoffice.settings import get_config

# Crockford-style alphabet: no 0/O or 1/I so codes survive being read aloud.
REDEMPTION_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_GROUP_SIZE = 5


def generate_redemption_code(length: int | None = None) -> str:
    """Return a fresh random redemption code such as ``"K7QPM-2XWHD-..."``.

    Every character is drawn from :data:`REDEMPTION_ALPHABET` with
    :mod:`secrets`, giving five bits of entropy per character. Codes carry
    no order, category, or time information.

    Args:
        length: Number of random characters; defaults to
            ``BOXOFFICE["redemption_code_length"]``.
    """
    if length is None:
        length = get_config().redemption_code_length
    chars = "".join(secrets.choice(REDEMPTION_ALPHABET) for _ in range(length))
    return "-".join(chars[i : i + _GROUP_SIZE] for i in range(0, length, _GROUP_SIZE))


def format_display_label(series: str, sequence_number: int) -> str:
    """Return the printed seat label, e.g. ``format_display_label("GOLD", 7) == "GOLD 7"``."""
    return f"{series} {sequence_number}"
