"""Email identity helpers - normalization and RFC 5322-ish format validation."""
import re

MAX_EMAIL_LENGTH = 320
MAX_LOCAL_PART_LENGTH = 64
MAX_DOMAIN_LENGTH = 255

_BASIC_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    """Lowercase and trim an email address."""
    return email.strip().lower()


def is_valid_email(email) -> bool:
    """
    Validate email format.

    Rules:
    - one @, non-empty local part of at most 64 characters
    - domain of at most 255 characters containing a dot
    - domain must not start or end with a dot or hyphen
    - no consecutive dots, no leading/trailing dot in the address or its local part
    - at most 320 characters overall
    """
    if not email or not isinstance(email, str):
        return False

    if len(email) > MAX_EMAIL_LENGTH:
        return False

    if not _BASIC_EMAIL_RE.match(email):
        return False

    if ".." in email or email.startswith(".") or email.endswith("."):
        return False

    parts = email.split("@")
    if len(parts) != 2:
        return False

    local_part, domain = parts

    if not local_part or len(local_part) > MAX_LOCAL_PART_LENGTH:
        return False

    if local_part.startswith(".") or local_part.endswith("."):
        return False

    if not domain or len(domain) > MAX_DOMAIN_LENGTH or "." not in domain:
        return False

    if domain[0] in ".-" or domain[-1] in ".-":
        return False

    return True
