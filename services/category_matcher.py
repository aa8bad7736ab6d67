# services/category_matcher.py
"""
Category Matcher for the AuthentiQC product catalog.

Normalizes free-text category labels coming from the identification model
and folds near-duplicates into categories that already exist, so the catalog
doesn't fragment into "Watch", "Watches", "Luxury Watches", "Timepiece"...

Pure and synchronous; no I/O.
"""
import re
from typing import Dict, Iterable, Optional

import config
from contracts.errors import InvalidCategory
from contracts.models import NormalizedCategory


# ============================================================================
# Alias Table
# ============================================================================
# Manually curated; keys and values are normalized (lowercase, no punctuation).
# Targets must themselves be stable under normalization.

CATEGORY_ALIASES: Dict[str, str] = {
    # Watches
    "wristwatch": "watch",
    "wrist watch": "watch",
    "timepiece": "watch",
    "luxury watch": "watch",
    "luxury watches": "watch",
    "designer watch": "watch",
    "designer watches": "watch",
    "smart watch": "smartwatch",

    # Bags
    "purse": "handbag",
    "hand bag": "handbag",
    "designer handbag": "handbag",
    "luxury handbag": "handbag",

    # Footwear
    "sneaker": "shoe",
    "trainer": "shoe",
    "footwear": "shoe",

    # Electronics
    "smartphone": "phone",
    "mobile phone": "phone",
    "cell phone": "phone",
    "cellphone": "phone",
    "laptop": "computer",
    "notebook computer": "computer",
    "desktop computer": "computer",

    # Jewelry / eyewear
    "jewellery": "jewelry",
    "jewel": "jewelry",
    "fine jewelry": "jewelry",
    "eyewear": "sunglasses",
    "shade": "sunglasses",

    # Clothing
    "tee": "t shirt",
    "tshirt": "t shirt",
    "apparel": "clothing",
    "garment": "clothing",
}

# ============================================================================
# Singularization
# ============================================================================

IRREGULAR_PLURALS = {
    "accessories": "accessory",
    "knives": "knife",
    "scarves": "scarf",
    "leaves": "leaf",
    "shelves": "shelf",
    "children": "child",
    "watches": "watch",
}

# Words that look plural but are category names as-is
UNCOUNTABLE = {
    "sunglasses", "glasses", "jeans", "pants", "trousers", "shorts",
    "leggings", "electronics", "clothing", "jewelry", "series", "cosmetics",
    "headphones", "earphones", "goggles", "news",
}

_APOSTROPHES = re.compile(r"['’`]")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

MAX_NORMALIZE_PASSES = 5


def singularize(word: str) -> str:
    """Singularize one lowercase token using the irregular table and suffix rules."""
    if word in IRREGULAR_PLURALS:
        return IRREGULAR_PLURALS[word]
    if word in UNCOUNTABLE or len(word) <= 3:
        return word
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(("ches", "shes", "sses", "xes", "zes")):
        return word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")):
        return word[:-1]
    return word


def _strip_punctuation(text: str) -> str:
    text = _APOSTROPHES.sub("", text.lower())
    text = _PUNCTUATION.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _normalize_once(text: str, aliases: Dict[str, str]) -> str:
    text = _strip_punctuation(text)
    text = aliases.get(text, text)

    tokens = []
    for token in text.split():
        token = singularize(token)
        tokens.append(aliases.get(token, token))

    text = " ".join(tokens)
    return aliases.get(text, text)


def normalize_category_key(label: Optional[str], aliases: Optional[Dict[str, str]] = None) -> str:
    """
    Normalize a category label to its comparison key.

    Lowercases, strips punctuation, applies aliases and singularizes,
    repeating until nothing changes, so normalizing a key is a no-op.
    Returns '' for labels with no word characters.
    """
    aliases = CATEGORY_ALIASES if aliases is None else aliases
    current = label or ""
    for _ in range(MAX_NORMALIZE_PASSES):
        nxt = _normalize_once(current, aliases)
        if nxt == current:
            break
        current = nxt
    return current


def display_label(key: str) -> str:
    """'t shirt' -> 'T Shirt'"""
    return " ".join(token.capitalize() for token in key.split())


def token_jaccard(key_a: str, key_b: str) -> float:
    """Intersection over union of word tokens."""
    tokens_a = set(key_a.split())
    tokens_b = set(key_b.split())
    if not tokens_a and not tokens_b:
        return 1.0
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def category_similarity(a: str, b: str, aliases: Optional[Dict[str, str]] = None) -> float:
    """
    Similarity in [0, 1] between two category labels (symmetric, reflexive).
    """
    return token_jaccard(normalize_category_key(a, aliases), normalize_category_key(b, aliases))


# ============================================================================
# Matcher
# ============================================================================

class CategoryMatcher:
    """
    Decides whether a new category label denotes a category already in use.

    Biased toward consolidation: any existing category at or above the
    threshold absorbs the new label.
    """

    def __init__(
        self,
        threshold: float = config.CATEGORY_SIMILARITY_THRESHOLD,
        aliases: Optional[Dict[str, str]] = None
    ):
        """
        Args:
            threshold: Inclusive merge threshold in [0, 1]
            aliases: Alias table (defaults to CATEGORY_ALIASES)
        """
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold
        self.aliases = CATEGORY_ALIASES if aliases is None else aliases

    def normalize(self, label: Optional[str]) -> str:
        return normalize_category_key(label, self.aliases)

    def similarity(self, a: str, b: str) -> float:
        return token_jaccard(self.normalize(a), self.normalize(b))

    def resolve_category(self, raw_label: str, existing_categories: Iterable[str]) -> NormalizedCategory:
        """
        Resolve a raw label against the categories already in the catalog.

        Args:
            raw_label: Free-text label from the classifier
            existing_categories: Categories in use, in insertion order

        Returns:
            NormalizedCategory, merged into an existing one when similar enough

        Raises:
            InvalidCategory: Label is empty after normalization
        """
        key = self.normalize(raw_label)
        if not key:
            raise InvalidCategory("category label is empty", label=raw_label)

        best_label = None
        best_key = None
        best_score = -1.0
        closest = None

        for existing in existing_categories:
            existing_key = self.normalize(existing)
            if not existing_key:
                continue

            score = token_jaccard(key, existing_key)
            if closest is None or score > closest:
                closest = score

            # Strict '>' keeps the first-inserted category on exact ties
            if score >= self.threshold and score > best_score:
                best_label = existing.strip()
                best_key = existing_key
                best_score = score

        if best_key is not None:
            # Existing label returned exactly as stored
            return NormalizedCategory(
                canonical_form=best_label,
                key=best_key,
                merged=True,
                similarity=best_score
            )

        return NormalizedCategory(
            canonical_form=display_label(key),
            key=key,
            merged=False,
            similarity=closest
        )


def resolve_category(raw_label: str, existing_categories: Iterable[str]) -> NormalizedCategory:
    """Resolve with the configured threshold and the default alias table."""
    return CategoryMatcher().resolve_category(raw_label, existing_categories)
