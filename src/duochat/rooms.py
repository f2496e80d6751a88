"""
Room identity — the canonical key of a two-party conversation.

Every membership test in the package goes through derive_key(); nothing else
sorts and joins participant ids.
"""

SEPARATOR = "_"
_ESCAPE = "\\"


def _escape(participant_id: str) -> str:
    # Escaping keeps the key collision-free for ids that contain the separator.
    return participant_id.replace(_ESCAPE, _ESCAPE * 2).replace(SEPARATOR, _ESCAPE + SEPARATOR)


def derive_key(id_a: str, id_b: str) -> str:
    """Symmetric key for the pair: derive_key(a, b) == derive_key(b, a).

    >>> derive_key("u2", "u1")
    'u1_u2'
    """
    low, high = sorted((id_a, id_b))
    return f"{_escape(low)}{SEPARATOR}{_escape(high)}"
