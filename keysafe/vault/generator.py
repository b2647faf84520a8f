"""Random password generation."""
import secrets
import string

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
NUMBERS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def charset(
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
    symbols: bool = True,
) -> str:
    """Alphabet for the enabled character classes, lowercase when none are."""
    chars = ""
    if uppercase:
        chars += UPPERCASE
    if lowercase:
        chars += LOWERCASE
    if numbers:
        chars += NUMBERS
    if symbols:
        chars += SYMBOLS
    return chars or LOWERCASE


def generate_password(
    length: int = 16,
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
    symbols: bool = True,
) -> str:
    """Generate a random password of exactly ``length`` characters.

    Raises:
        ValueError: If length is negative.
    """
    if length < 0:
        raise ValueError(f"Password length cannot be negative: {length}")
    chars = charset(uppercase, lowercase, numbers, symbols)
    return "".join(secrets.choice(chars) for _ in range(length))
