import re
import unicodedata
from typing import Iterable, Optional

from rapidfuzz.distance import Levenshtein

# Accepted answers shorter than this (once normalized) must match exactly
MIN_FUZZY_LENGTH = 4
MIN_SIMILARITY = 0.8

_NON_ALNUM = re.compile(r'[^a-z0-9]')


def normalize_answer(text: Optional[str]) -> str:
    """Case-fold, strip diacritics, then drop everything that isn't a-z or 0-9."""
    if not text:
        return ''
    decomposed = unicodedata.normalize('NFD', text.casefold())
    stripped = ''.join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM.sub('', stripped)


def similarity(a: str, b: str) -> float:
    longest = max(len(a), len(b))
    if not longest:
        return 1.0
    return 1 - Levenshtein.distance(a, b) / longest


def is_answer_correct(answer: Optional[str], accepted: Iterable[str]) -> bool:
    guess = normalize_answer(answer)
    if not guess:
        return False
    for candidate in accepted:
        target = normalize_answer(candidate)
        if not target:
            continue
        if guess == target:
            return True
        if len(target) < MIN_FUZZY_LENGTH:
            continue
        if similarity(guess, target) >= MIN_SIMILARITY:
            return True
    return False
