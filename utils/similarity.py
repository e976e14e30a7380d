"""
Similarity scores between normalized product names.

Both functions return a float in [0, 1] and expect input already passed
through normalize_product_name().
"""

from rapidfuzz.distance import Levenshtein

# Bonus weight for common words appearing in the same order
ORDER_BONUS_WEIGHT = 0.2
# Score returned when one name is a near-complete substring of the other
CONTAINMENT_SCORE = 0.7
CONTAINMENT_MIN_RATIO = 0.7


def tokenize(text: str) -> list[str]:
    return [word for word in text.split() if len(word) > 1]


def _ordered_unique(tokens: list[str], keep: set[str]) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for token in tokens:
        if token in keep and token not in seen:
            seen.add(token)
            ordered.append(token)
    return ordered


def similarity(a: str, b: str) -> float:
    """
    Token-overlap similarity with an order bonus.

    - identical → 1.0, either empty → 0.0
    - words of one character are ignored
    - base score is |common words| / |all distinct words|
    - common words sitting at the same relative position in both names
      add up to 0.2
    - names without usable words fall back to substring containment

    Examples:
        similarity("дрожжи спиртовые турбо", "дрожжи турбо") → 0.867
        similarity("пробка корковая", "пробка пластиковая") → 0.533

    Args:
        a: First normalized name
        b: Second normalized name

    Returns:
        Score in [0, 1]
    """
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    words_a = tokenize(a)
    words_b = tokenize(b)

    if not words_a or not words_b:
        longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
        if shorter in longer and len(shorter) / len(longer) > CONTAINMENT_MIN_RATIO:
            return CONTAINMENT_SCORE
        return 0.0

    return token_similarity(words_a, words_b)


def token_similarity(words_a: list[str], words_b: list[str]) -> float:
    """
    Word-overlap score of two non-empty token lists (see similarity()).
    """
    common = set(words_a) & set(words_b)
    union = set(words_a) | set(words_b)
    word_similarity = len(common) / len(union)

    order_bonus = 0.0
    if common:
        order_a = _ordered_unique(words_a, common)
        order_b = _ordered_unique(words_b, common)
        in_place = sum(1 for x, y in zip(order_a, order_b) if x == y)
        order_bonus = in_place / len(common) * ORDER_BONUS_WEIGHT

    return min(1.0, word_similarity + order_bonus)


def edit_distance_similarity(a: str, b: str) -> float:
    """
    Levenshtein similarity: 1 - distance / max(len(a), len(b)).

    Two empty strings are identical (1.0).
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0

    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / longest
