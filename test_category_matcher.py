"""
Tests for category normalization and merge decisions.
"""
import pytest

from contracts.errors import InvalidCategory
from services.category_matcher import (
    CategoryMatcher,
    category_similarity,
    display_label,
    normalize_category_key,
    resolve_category,
    singularize,
)


def test_plural_label_merges_into_existing_category():
    result = resolve_category("Luxury Watches", ["Watch"])

    assert result.canonical_form == "Watch"
    assert result.merged is True
    assert result.similarity == 1.0


def test_unrelated_label_becomes_new_category():
    result = resolve_category("Handbag", ["Watch"])

    assert result.canonical_form == "Handbag"
    assert result.merged is False
    assert result.similarity == 0.0


def test_no_existing_categories():
    result = resolve_category("sneakers", [])

    assert result.canonical_form == "Shoe"
    assert result.merged is False
    assert result.similarity is None


@pytest.mark.parametrize("label", [
    "Watches", "Luxury Watches", "T-Shirts", "Sneakers", "Women's Handbags",
    "Jewellery", "Sunglasses", "Accessories", "  Smart   Watches!  ", "Cell Phones",
])
def test_normalization_is_idempotent(label):
    key = normalize_category_key(label)
    assert key
    assert normalize_category_key(key) == key


@pytest.mark.parametrize("label, expected", [
    ("Watches", "watch"),
    ("WRIST-WATCH", "watch"),
    ("Timepiece", "watch"),
    ("T-Shirts", "t shirt"),
    ("Jewellery", "jewelry"),
    ("Accessories", "accessory"),
    ("Sunglasses", "sunglasses"),
    ("Boxes", "box"),
])
def test_normalized_keys(label, expected):
    assert normalize_category_key(label) == expected


def test_singularize_rules():
    assert singularize("bags") == "bag"
    assert singularize("batteries") == "battery"
    assert singularize("dresses") == "dress"
    assert singularize("glass") == "glass"
    assert singularize("jeans") == "jeans"
    assert singularize("bus") == "bus"


def test_display_label():
    assert display_label("t shirt") == "T Shirt"
    assert display_label("watch") == "Watch"


@pytest.mark.parametrize("a, b", [
    ("Luxury Watches", "Watch"),
    ("Gold Chain Necklace", "Gold Chain Necklace Set"),
    ("Handbag", "Leather Handbag"),
    ("Shoes", "Phones"),
])
def test_similarity_is_symmetric_and_reflexive(a, b):
    assert category_similarity(a, b) == category_similarity(b, a)
    assert category_similarity(a, a) == 1.0
    assert 0.0 <= category_similarity(a, b) <= 1.0


def test_threshold_is_inclusive():
    result = resolve_category("Gold Chain Necklace", ["Gold Chain Necklace Set"])

    assert result.similarity == pytest.approx(0.75)
    assert result.merged is True
    assert result.canonical_form == "Gold Chain Necklace Set"


def test_just_below_threshold_stays_separate():
    result = resolve_category("Gold Chain", ["Gold Chain Set"])

    assert result.merged is False
    assert result.canonical_form == "Gold Chain"
    assert result.similarity == pytest.approx(2 / 3)


def test_exact_tie_prefers_first_inserted():
    result = resolve_category("Gold Chain Necklace", ["Gold Chain Necklace Set", "Gold Chain Necklace Box"])

    assert result.canonical_form == "Gold Chain Necklace Set"


def test_highest_similarity_wins_over_insertion_order():
    result = resolve_category("Gold Chain Necklace", ["Gold Chain Necklace Set", "Gold Chain Necklaces"])

    assert result.canonical_form == "Gold Chain Necklaces"
    assert result.similarity == 1.0


def test_blank_existing_categories_are_ignored():
    result = resolve_category("Watches", ["", "!!", "Watch"])

    assert result.merged is True
    assert result.canonical_form == "Watch"


@pytest.mark.parametrize("label", ["", "   ", "!!!", None])
def test_empty_label_rejected(label):
    with pytest.raises(InvalidCategory) as exc:
        resolve_category(label, ["Watch"])
    assert exc.value.status_code == 400


def test_custom_threshold():
    matcher = CategoryMatcher(threshold=0.5)

    result = matcher.resolve_category("Gold Chain", ["Gold Chain Set"])

    assert result.merged is True
    assert result.canonical_form == "Gold Chain Set"


def test_custom_alias_table_replaces_default():
    matcher = CategoryMatcher(aliases={})

    assert matcher.resolve_category("Timepiece", ["Watch"]).merged is False
    assert CategoryMatcher().resolve_category("Timepiece", ["Watch"]).merged is True


@pytest.mark.parametrize("threshold", [-0.1, 1.01])
def test_threshold_out_of_range(threshold):
    with pytest.raises(ValueError):
        CategoryMatcher(threshold=threshold)


@pytest.mark.parametrize("raw, existing, expected_key", [
    ("T Shirts", "T-Shirt", "t shirt"),
    ("Luxury Watches", "Watches", "watch"),
    ("wrist watch", "  Watches  ", "watch"),
])
def test_merge_returns_existing_label_as_stored(raw, existing, expected_key):
    result = resolve_category(raw, ["Handbag", existing])

    assert result.merged is True
    assert result.canonical_form == existing.strip()
    assert result.key == expected_key
