import re
import unicodedata
from typing import Awaitable, Callable

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(text: str) -> str:
    """
    Lowercase, strip diacritics, and join alphanumeric runs with ``-``.

    >>> slugify("  Héllo, Wörld! ")
    'hello-world'
    """
    ascii_text = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    return _NON_ALNUM.sub("-", ascii_text.lower()).strip("-")


async def unique_slug(text: str, exists: Callable[[str], Awaitable[bool]]) -> str:
    """
    Return the first of ``base``, ``base-1``, ``base-2``, ... for which
    *exists* answers False.  The counter is always appended to the original
    base, never to a previously suffixed candidate.
    """
    base = slugify(text)
    candidate = base
    counter = 1
    while await exists(candidate):
        candidate = f"{base}-{counter}"
        counter += 1
    return candidate
