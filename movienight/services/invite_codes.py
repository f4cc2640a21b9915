import secrets

from movienight.config import settings

# Uppercase letters and digits minus the look-alikes 0/O and 1/I/L
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 10


def generate_code(length: int = CODE_LENGTH) -> str:
    """Return a random invite code drawn uniformly from CODE_ALPHABET.

    Codes are bearer capabilities, so they come from the ``secrets`` CSPRNG.
    """
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def invite_url(code: str) -> str:
    return f"{settings.base_url.rstrip('/')}/join/{code}"
