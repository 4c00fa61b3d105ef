"""Account-link deep links: `/start link_<code>` where code is the base64 account id."""
import base64
import binascii
from typing import Optional

LINK_PREFIX = "link_"


def extract_link_code(text: str) -> Optional[str]:
    """Return the code from `/start link_<code>`, or None for a plain /start."""
    parts = (text or "").strip().split(maxsplit=1)
    if len(parts) < 2 or not parts[1].startswith(LINK_PREFIX):
        return None
    return parts[1][len(LINK_PREFIX):].strip() or None


def decode_link_code(code: str) -> str:
    """
    Decode a link code into the account id.

    Accepts standard and URL-safe alphabets with or without padding.

    Raises:
        ValueError: If the code is not valid base64 text
    """
    raw = (code or "").strip().replace("-", "+").replace("_", "/")
    if not raw:
        raise ValueError("empty link code")
    raw += "=" * (-len(raw) % 4)
    try:
        decoded = base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError("invalid link code") from e
    decoded = decoded.strip()
    if not decoded or not decoded.isprintable():
        raise ValueError("invalid link code")
    return decoded


def encode_link_code(account_id: str) -> str:
    return base64.urlsafe_b64encode(account_id.encode("utf-8")).decode("ascii").rstrip("=")
