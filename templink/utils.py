import secrets
import string
import time

# URL-safe alphabet, same as nanoid's default.
ALPHABET = string.ascii_letters + string.digits + "_-"


def generate_random_code(length: int = 8) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def now_ms() -> int:
    """Wall clock in epoch milliseconds."""
    return int(time.time() * 1000)
