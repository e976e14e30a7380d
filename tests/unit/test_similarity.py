"""
Unit tests for similarity scoring.
"""

import pytest

from utils.similarity import (
    tokenize,
    similarity,
    token_similarity,
    edit_distance_similarity,
)


class TestTokenize:
    """Tests for tokenize()"""

    def test_drops_single_character_words(self):
        assert tokenize("кофе 3 в 1 молотый") == ["кофе", "молотый"]

    def test_empty(self):
        assert tokenize("") == []


class TestSimilarity:
    """Tests for similarity()"""

    def test_identical_is_one(self):
        assert similarity("хмель cascade", "хмель cascade") == 1.0

    @pytest.mark.parametrize("a,b", [("", "хмель"), ("хмель", ""), ("", "")])
    def test_empty_is_zero(self, a, b):
        assert similarity(a, b) == 0.0

    def test_subset_in_order(self):
        # 2 common / 3 distinct + full order bonus
        assert similarity("дрожжи спиртовые турбо", "дрожжи турбо") == pytest.approx(2 / 3 + 0.2)

    def test_one_common_word(self):
        # 1 common / 3 distinct + full order bonus
        assert similarity("пробка корковая", "пробка пластиковая") == pytest.approx(1 / 3 + 0.2)

    def test_reordered_words_get_less_bonus(self):
        in_order = similarity("солод пшеничный светлый", "солод пшеничный")
        reordered = similarity("пшеничный солод светлый", "солод пшеничный")
        assert in_order > reordered
        assert reordered == pytest.approx(2 / 3)

    def test_no_common_words_is_zero(self):
        assert similarity("хмель cascade", "сахар белый") == 0.0

    def test_clamped_to_one(self):
        assert similarity("хмель хмель cascade", "хмель cascade") <= 1.0

    def test_is_symmetric_for_word_overlap(self):
        a, b = "дрожжи спиртовые турбо", "турбо дрожжи"
        assert similarity(a, b) == pytest.approx(similarity(b, a))

    def test_containment_fallback_without_words(self):
        # Single-character words are not tokens
        assert similarity("а б в г", "а б в") == pytest.approx(0.7)

    def test_containment_fallback_needs_length_ratio(self):
        assert similarity("а б в г д е", "а б") == 0.0

    def test_range(self):
        score = similarity("хмель cascade 100г", "хмель каскад 100 г")
        assert 0.0 <= score <= 1.0


class TestTokenSimilarity:
    """Tests for token_similarity()"""

    def test_duplicates_counted_once(self):
        assert token_similarity(["хмель", "хмель"], ["хмель"]) == 1.0


class TestEditDistanceSimilarity:
    """Tests for edit_distance_similarity()"""

    def test_both_empty_is_one(self):
        assert edit_distance_similarity("", "") == 1.0

    def test_one_empty_is_zero(self):
        assert edit_distance_similarity("", "abc") == 0.0

    def test_single_substitution(self):
        # kitten → sitting: distance 3, max length 7
        assert edit_distance_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)

    def test_typo(self):
        assert edit_distance_similarity("дрожжи турбо", "дрожи турбо") == pytest.approx(1 - 1 / 12)
