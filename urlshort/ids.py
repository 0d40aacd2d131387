import secrets
import string

from urlshort.errors import invalid

# URL-safe, same character set as nanoid's default alphabet
ALPHABET = string.ascii_letters + string.digits + "_-"
MAX_CODE_LENGTH = 50


def generate_code(length: int = 7) -> str:
    if isinstance(length, bool) or not isinstance(length, int):
        raise invalid("Length must be a positive number")
    if length <= 0:
        raise invalid("Length must be a positive number")
    if length > MAX_CODE_LENGTH:
        raise invalid(f"Length cannot exceed {MAX_CODE_LENGTH} characters")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))
