"""Instagram profile URL parsing for the lead capture flow."""
import re
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel

_USERNAME_RE = re.compile(r"^[a-zA-Z0-9._]+$")

# First path segments that are Instagram pages, not profiles
NON_PROFILE_SEGMENTS = frozenset(
    {"p", "reel", "reels", "stories", "explore", "accounts", "direct", "about", "developer"}
)


class ParseResult(BaseModel):
    ok: bool
    username: Optional[str] = None
    reason: Optional[str] = None


def parse_profile_username(url: str) -> ParseResult:
    """Extract the profile username from an Instagram URL.

    Args:
        url: Address of the page the user is looking at.

    Returns:
        ParseResult(ok=True, username=...) for a profile page, otherwise
        ParseResult(ok=False, reason=...) with a message for the user.
    """
    try:
        parts = urlsplit((url or "").strip())
        host = (parts.hostname or "").lower()
    except ValueError:
        return ParseResult(ok=False, reason="URL inválida.")
    if not parts.scheme or not host:
        return ParseResult(ok=False, reason="URL inválida.")

    if host.startswith("www."):
        host = host[4:]
    if host != "instagram.com":
        return ParseResult(ok=False, reason="Abra um perfil do Instagram.")

    segments = [s for s in parts.path.split("/") if s]
    if not segments:
        return ParseResult(ok=False, reason="Abra um perfil do Instagram.")

    first = segments[0]
    if first in NON_PROFILE_SEGMENTS:
        return ParseResult(ok=False, reason="Essa página não é um perfil.")

    username = first.strip()
    if not _USERNAME_RE.match(username):
        return ParseResult(ok=False, reason="Username inválido.")
    return ParseResult(ok=True, username=username)
