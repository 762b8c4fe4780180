from typing import List, Optional

SUPPORTED_LANGUAGES: List[str] = [
    "Englisch",
    "Deutsch",
    "Persisch",
    "Spanisch",
    "Französisch",
    "Arabisch",
]

MAX_DETECTED_LANGUAGE_WORDS = 2


def normalize_language(language: str) -> Optional[str]:
    """Map user input to the canonical label, case-insensitively."""
    wanted = (language or "").strip().casefold()
    for code in SUPPORTED_LANGUAGES:
        if code.casefold() == wanted:
            return code
    return None


def is_valid_detected_language(answer: str) -> bool:
    """A detection answer longer than a short language name is treated as noise."""
    words = (answer or "").split()
    return 0 < len(words) <= MAX_DETECTED_LANGUAGE_WORDS


def matches_language(detected: str, target: str) -> bool:
    return detected.strip().casefold().startswith(target.strip().casefold())
