# backend/app/services/generator.py
"""Random password / passphrase generation and strength scoring."""
import re
import secrets
from typing import List

from backend.app.core.errors import ValidationError
from backend.app.schemas.utility import GeneratorOptions, PassphraseOptions, StrengthReport

UPPERCASE = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
LOWERCASE = "abcdefghijklmnopqrstuvwxyz"
DIGITS = "0123456789"
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

SIMILAR = "IiLlOo10"
AMBIGUOUS = "{}[]()/\\'\"`,;.<>"

WORDS = [
    "apple", "banana", "cherry", "dragon", "elephant", "forest", "guitar", "house",
    "island", "jungle", "kitten", "lemon", "mountain", "ocean", "piano", "queen",
    "river", "sunset", "tiger", "umbrella", "violet", "window", "yellow", "zebra",
    "bridge", "castle", "dream", "eagle", "flower", "garden", "happy", "ice",
    "jazz", "knight", "light", "magic", "night", "orange", "peace", "quick",
    "rainbow", "star", "tree", "unique", "voice", "water", "extra", "young",
]


def _without(chars: str, excluded: str) -> str:
    return "".join(c for c in chars if c not in excluded)


def generate_password(options: GeneratorOptions = None) -> str:
    """
    Build a password from the selected character classes.

    Per-class minimums are placed at distinct random positions first; the
    rest is drawn from the union of all selected characters.
    """
    options = options or GeneratorOptions()

    classes = []
    if options.include_uppercase:
        chars = _without(UPPERCASE, SIMILAR) if options.exclude_similar else UPPERCASE
        classes.append((chars, options.min_uppercase))
    if options.include_lowercase:
        chars = _without(LOWERCASE, SIMILAR) if options.exclude_similar else LOWERCASE
        classes.append((chars, options.min_lowercase))
    if options.include_numbers:
        chars = _without(DIGITS, SIMILAR) if options.exclude_similar else DIGITS
        classes.append((chars, options.min_numbers))
    if options.include_symbols:
        chars = _without(SYMBOLS, AMBIGUOUS) if options.exclude_ambiguous else SYMBOLS
        classes.append((chars, options.min_symbols))

    charset = "".join(chars for chars, _ in classes) + options.custom_characters
    if not charset:
        raise ValidationError("No character set selected")

    required = sum(minimum for _, minimum in classes)
    if required > options.length:
        raise ValidationError("Minimum character counts exceed the password length")

    slots: List[str] = [""] * options.length
    free = list(range(options.length))
    for chars, minimum in classes:
        for _ in range(minimum):
            position = free.pop(secrets.randbelow(len(free)))
            slots[position] = secrets.choice(chars)

    for position in free:
        slots[position] = secrets.choice(charset)
    return "".join(slots)


def generate_passphrase(options: PassphraseOptions = None) -> str:
    options = options or PassphraseOptions()
    words = []
    for i in range(options.word_count):
        word = secrets.choice(WORDS)
        if options.capitalize:
            word = word.capitalize()
        if options.include_numbers and i == options.word_count - 1:
            word += str(10 + secrets.randbelow(89))
        words.append(word)
    return options.separator.join(words)


def check_strength(password: str) -> StrengthReport:
    score = 0
    feedback = []

    if len(password) >= 8:
        score += 1
    else:
        feedback.append("Use at least 8 characters")
    if len(password) >= 12:
        score += 1
    if len(password) >= 16:
        score += 1

    for pattern, hint in (
        (r"[a-z]", "Include lowercase letters"),
        (r"[A-Z]", "Include uppercase letters"),
        (r"[0-9]", "Include numbers"),
        (r"[^A-Za-z0-9]", "Include special characters"),
    ):
        if re.search(pattern, password):
            score += 1
        else:
            feedback.append(hint)

    if re.search(r"(.)\1{2,}", password):
        score -= 1
        feedback.append("Avoid repeated characters")
    if re.search(r"123|abc|qwe", password, re.IGNORECASE):
        score -= 1
        feedback.append("Avoid common sequences")

    if score >= 7:
        strength = "Very Strong"
    elif score >= 5:
        strength = "Strong"
    elif score >= 3:
        strength = "Medium"
    elif score >= 1:
        strength = "Weak"
    else:
        strength = "Very Weak"

    return StrengthReport(score=max(0, score), strength=strength, feedback=feedback)
