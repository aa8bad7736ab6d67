# services/section_names.py
"""
Standard QC section names by product category.

Report generation returns free-text section names ("Dial and hands",
"strap / bracelet"). These helpers snap them onto the standard list for the
product's category so searches and comparisons use a stable vocabulary.
"""
import re
from typing import Dict, List

from services.category_matcher import normalize_category_key


# ============================================================================
# Standard Sections
# ============================================================================

STANDARD_SECTION_NAMES: Dict[str, List[str]] = {
    "watches": ["Dial & Hands", "Case & Bezel", "Crown & Pushers", "Bracelet/Strap", "Clasp",
                "Movement", "Case Back", "Packaging", "Documentation"],
    "bags": ["Exterior Material", "Interior Lining", "Hardware & Zippers", "Stitching",
             "Handles/Straps", "Logo & Stamps", "Dust Bag", "Authenticity Card", "Packaging"],
    "shoes": ["Upper Material", "Sole", "Stitching", "Logo & Branding", "Interior", "Laces",
              "Box & Packaging", "Authenticity Card"],
    "electronics": ["Display/Screen", "Body/Casing", "Ports & Buttons", "Camera/Lens",
                    "Software/Interface", "Accessories", "Packaging", "Documentation"],
    "jewelry": ["Metal Quality", "Gemstones", "Clasp/Closure", "Engravings", "Finish/Polish",
                "Chain/Band", "Packaging", "Certificate"],
    "clothing": ["Fabric Quality", "Stitching", "Labels & Tags", "Hardware", "Construction",
                 "Finish", "Packaging"],
    "default": ["Overall Quality", "Materials", "Construction", "Hardware", "Branding", "Finish",
                "Packaging", "Documentation"],
}

# Normalized category tokens -> section list
CATEGORY_SECTION_KEYWORDS = {
    "watches": ["watch", "smartwatch", "chronograph"],
    "bags": ["bag", "handbag", "backpack", "tote", "clutch", "wallet"],
    "shoes": ["shoe", "boot", "sandal", "loafer", "heel"],
    "electronics": ["electronics", "phone", "computer", "tablet", "camera", "headphones", "console"],
    "jewelry": ["jewelry", "ring", "necklace", "bracelet", "earring", "pendant"],
    "clothing": ["clothing", "shirt", "dress", "jacket", "coat", "hoodie", "sweater", "jeans", "pants"],
}

SECTION_SIMILARITY_THRESHOLD = 0.7
MIN_TOKEN_LENGTH = 2

_SECTION_PUNCTUATION = re.compile(r"[&/\\#,+()$~%.'\":*?<>{}]")


def section_group_for(category: str) -> str:
    """Pick the STANDARD_SECTION_NAMES key for a product category"""
    tokens = set(normalize_category_key(category).split())
    for group, keywords in CATEGORY_SECTION_KEYWORDS.items():
        if tokens & set(keywords):
            return group
    return "default"


def standard_sections_for(category: str) -> List[str]:
    return STANDARD_SECTION_NAMES[section_group_for(category)]


def _loose(text: str) -> str:
    text = _SECTION_PUNCTUATION.sub(" ", text)
    return re.sub(r"\s+", " ", text).strip().lower()


def section_similarity(a: str, b: str) -> float:
    """
    Layered similarity between two section names.

    1.0 exact (case-insensitive), 0.95 equal ignoring punctuation,
    0.85 when one contains the other, otherwise Jaccard over tokens
    longer than MIN_TOKEN_LENGTH.
    """
    s1 = a.strip().lower()
    s2 = b.strip().lower()
    if s1 == s2:
        return 1.0

    n1 = _loose(s1)
    n2 = _loose(s2)
    if n1 == n2:
        return 0.95
    if n1 and n2 and (n1 in n2 or n2 in n1):
        return 0.85

    tokens1 = {t for t in n1.split(" ") if len(t) > MIN_TOKEN_LENGTH}
    tokens2 = {t for t in n2.split(" ") if len(t) > MIN_TOKEN_LENGTH}
    if not tokens1 or not tokens2:
        return 0.0
    return len(tokens1 & tokens2) / len(tokens1 | tokens2)


def normalize_section_name(section_name: str, category: str = "default") -> str:
    """
    Snap a section name onto the standard list for the category.

    Returns the trimmed input when nothing scores above the threshold.
    """
    trimmed = (section_name or "").strip()
    best_match = trimmed
    best_score = SECTION_SIMILARITY_THRESHOLD

    for standard_name in standard_sections_for(category):
        score = section_similarity(trimmed, standard_name)
        if score > best_score:
            best_score = score
            best_match = standard_name

    return best_match
