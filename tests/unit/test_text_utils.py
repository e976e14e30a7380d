"""
Unit tests for product name normalization helpers.
"""

import pytest

from utils.text_utils import (
    normalize_product_name,
    strip_common_prefixes,
    extract_keywords,
    contains_any,
)


# ===================
# NORMALIZATION TESTS
# ===================

class TestNormalizeProductName:
    """Tests for normalize_product_name()"""

    def test_lowercases_and_trims(self):
        assert normalize_product_name("  Хмель Cascade  ") == "хмель cascade"

    def test_collapses_whitespace(self):
        assert normalize_product_name("Дрожжи\t  спиртовые\nТурбо") == "дрожжи спиртовые турбо"

    def test_removes_quotes(self):
        assert normalize_product_name("Хмель «Cascade» 100г") == "хмель cascade 100г"
        assert normalize_product_name('Хмель "Cascade"') == "хмель cascade"

    def test_dash_variants_become_hyphen(self):
        assert normalize_product_name("Дрожжи — Турбо, 24ч") == "дрожжи - турбо 24ч"
        assert normalize_product_name("Дрожжи – Турбо") == "дрожжи - турбо"

    def test_punctuation_becomes_space(self):
        assert normalize_product_name("Пробка корковая, 100 шт.") == "пробка корковая 100 шт"

    def test_keeps_cyrillic_latin_and_digits(self):
        assert normalize_product_name("Солод Pilsner 2,5кг") == "солод pilsner 2 5кг"

    @pytest.mark.parametrize("value", [None, "", "   ", "«»"])
    def test_empty_input_returns_empty_string(self, value):
        assert normalize_product_name(value) == ""

    def test_non_string_is_coerced(self):
        assert normalize_product_name(12345) == "12345"

    def test_is_idempotent(self):
        once = normalize_product_name("АВ «Дрожжи» — Турбо, 24ч (6 шт.)")
        assert normalize_product_name(once) == once


# ===================
# PREFIX TESTS
# ===================

class TestStripCommonPrefixes:
    """Tests for strip_common_prefixes()"""

    def test_strips_cyrillic_prefix(self):
        assert strip_common_prefixes("ав дрожжи спиртовые турбо") == "дрожжи спиртовые турбо"

    def test_strips_latin_prefix(self):
        assert strip_common_prefixes("av дрожжи турбо") == "дрожжи турбо"

    def test_prefix_must_be_separate_word(self):
        assert strip_common_prefixes("авокадо сушеное") == "авокадо сушеное"

    def test_no_prefix_unchanged(self):
        assert strip_common_prefixes("хмель cascade") == "хмель cascade"


# ===================
# KEYWORD TESTS
# ===================

class TestExtractKeywords:
    """Tests for extract_keywords()"""

    def test_removes_count_annotation(self):
        assert extract_keywords("пробка корковая 100 шт") == "пробка корковая"

    def test_removes_weight_annotation(self):
        assert extract_keywords("хмель cascade 100г") == "хмель cascade"
        assert extract_keywords("хмель cascade 100 г") == "хмель cascade"

    def test_removes_decimal_amount(self):
        assert extract_keywords("солод 2.5 кг") == "солод"

    def test_removes_n_in_m_and_parenthesized_numbers(self):
        assert extract_keywords("кофе 3 в 1 (12)") == "кофе"

    def test_removes_comma_amount_from_raw_name(self):
        assert extract_keywords("сахар, 1 кг") == "сахар"
        assert extract_keywords("сахар, 1 кг, , белый") == "сахар, белый"

    def test_unit_inside_word_is_kept(self):
        # "л" followed by a letter is not a unit
        assert extract_keywords("дрожжи 5 лет") == "дрожжи 5 лет"

    def test_without_annotations_unchanged(self):
        assert extract_keywords("дрожжи спиртовые турбо") == "дрожжи спиртовые турбо"


class TestContainsAny:
    """Tests for contains_any()"""

    def test_matches_substring(self):
        assert contains_any("конечный остаток", ("остаток", "qty"))

    def test_no_match(self):
        assert not contains_any("цена", ("остаток", "qty"))
