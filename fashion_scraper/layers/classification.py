"""
Keyword classification for garment type and availability.

Both classifiers are total: unmatched input maps to the sentinel
(GarmentType.UNSUPPORTED / None for availability) and never raises.
"""
import re
from typing import Dict, List, Optional, Pattern, Tuple

from fashion_scraper.models.product import Availability, GarmentType

GARMENT_KEYWORDS: Dict[GarmentType, List[str]] = {
    GarmentType.UPPER: [
        "t-shirt", "tee", "shirt", "blouse", "top", "tank top", "camisole", "polo",
        "sweater", "jumper", "cardigan", "pullover", "hoodie", "sweatshirt",
        "jacket", "bomber", "blazer", "coat", "overcoat", "trench", "parka",
        "puffer", "gilet", "vest", "waistcoat", "knitwear", "outerwear", "bodysuit",
        "crewneck", "turtleneck", "anorak", "windbreaker",
    ],
    GarmentType.LOWER: [
        "pants", "trousers", "jeans", "denim", "shorts", "skirt", "leggings",
        "chinos", "joggers", "sweatpants", "culottes", "cargo", "slacks", "bottoms",
    ],
    GarmentType.FULL_BODY: [
        "dress", "gown", "jumpsuit", "romper", "playsuit", "overalls", "dungarees",
        "catsuit", "kaftan", "pajama set", "pyjama set", "loungewear set", "two-piece set",
    ],
    GarmentType.SHOES: [
        "shoes", "shoe", "sneakers", "sneaker", "trainers", "boots", "boot",
        "sandals", "heels", "pumps", "loafers", "flats", "mules", "slippers",
        "espadrilles", "clogs", "slides", "footwear", "oxfords", "brogues",
    ],
    GarmentType.OTHER: [
        "bag", "handbag", "tote", "clutch", "backpack", "wallet", "hat", "cap",
        "beanie", "scarf", "belt", "jewelry", "jewellery", "necklace", "earrings",
        "bracelet", "ring", "watch", "sunglasses", "gloves", "accessories", "socks",
    ],
}


def _build_patterns() -> List[Tuple[Pattern, GarmentType]]:
    patterns = []
    for garment, keywords in GARMENT_KEYWORDS.items():
        for keyword in keywords:
            escaped = re.escape(keyword).replace(r"\-", "[- ]?").replace(r"\ ", r"[\s-]+")
            patterns.append((re.compile(rf"\b{escaped}(?:e?s)?\b", re.IGNORECASE), garment))
    return patterns


_GARMENT_PATTERNS = _build_patterns()

# Breadcrumb/category separators, and joiners that introduce a modifier
# ("Trench Coat with Belt", "Jackets & Coats") rather than the head noun
SEGMENT_SPLIT_RE = re.compile(r"\s*[>/|›»]\s*")
MODIFIER_JOINER_RE = re.compile(r"\s+(?:with|featuring|incl(?:uding)?|&|and|\+)\s+", re.IGNORECASE)


def _head_text(text: str) -> str:
    """Drop everything after a modifier joiner within each breadcrumb segment."""
    segments = []
    for segment in SEGMENT_SPLIT_RE.split(text):
        head = MODIFIER_JOINER_RE.split(segment, maxsplit=1)[0].strip()
        if head:
            segments.append(head)
    return " > ".join(segments)


def classify_garment(text: Optional[str]) -> GarmentType:
    """
    Classify free text (breadcrumbs, category, product name) into a garment type.

    The right-most keyword wins, since the head noun ends English product
    names and breadcrumb trails ("Leather Dress Shoes" -> shoes,
    "Women > Shoes > Boots" -> shoes). On a position tie the longer
    match wins ("tank top" over "top"). Modifiers after "with", "&",
    "and" and similar joiners are ignored ("Midi Dress with Belt" -> full_body).

    Returns:
        GarmentType.UNSUPPORTED when nothing matches
    """
    if not text or not isinstance(text, str):
        return GarmentType.UNSUPPORTED

    text = _head_text(text)
    best: Optional[Tuple[int, int, GarmentType]] = None
    for pattern, garment in _GARMENT_PATTERNS:
        for match in pattern.finditer(text):
            key = (match.end(), match.end() - match.start(), garment)
            if best is None or key[:2] > best[:2]:
                best = key

    if best is None:
        return GarmentType.UNSUPPORTED
    return best[2]


# schema.org ItemAvailability values, compared lower-cased without the IRI prefix
SCHEMA_AVAILABILITY = {
    "instock": Availability.IN_STOCK,
    "instoreonly": Availability.LIMITED,
    "onlineonly": Availability.IN_STOCK,
    "limitedavailability": Availability.LIMITED,
    "preorder": Availability.LIMITED,
    "presale": Availability.LIMITED,
    "backorder": Availability.LIMITED,
    "madetoorder": Availability.LIMITED,
    "outofstock": Availability.OUT_OF_STOCK,
    "soldout": Availability.OUT_OF_STOCK,
    "discontinued": Availability.OUT_OF_STOCK,
}

# Ordered: out-of-stock phrases first so "not in stock" is not read as "in stock"
AVAILABILITY_PHRASES: List[Tuple[Pattern, Availability]] = [
    (re.compile(r"\b(?:sold[\s-]?out|out[\s-]of[\s-]stock|not\s+(?:in\s+stock|available)|unavailable|oos)\b", re.I),
     Availability.OUT_OF_STOCK),
    (re.compile(r"\b(?:only\s+\d+\s+left|low\s+(?:in\s+)?stock|few\s+(?:items\s+)?left|limited\s+(?:stock|availability)|pre[\s-]?order|back[\s-]?order)\b", re.I),
     Availability.LIMITED),
    (re.compile(r"\b(?:in[\s-]stock|available|add\s+to\s+(?:cart|bag|basket))\b", re.I),
     Availability.IN_STOCK),
]


def normalize_schema_availability(value: Optional[str]) -> Optional[Availability]:
    """Map a schema.org availability IRI or bare token to Availability."""
    if not value or not isinstance(value, str):
        return None
    token = value.strip().rstrip("/").rsplit("/", 1)[-1]
    token = re.sub(r"[\s_-]", "", token).lower()
    return SCHEMA_AVAILABILITY.get(token)


def availability_from_text(text: Optional[str]) -> Optional[Availability]:
    """Classify a stock phrase; None when the text carries no stock signal."""
    if not text or not isinstance(text, str):
        return None
    normalized = normalize_schema_availability(text)
    if normalized is not None:
        return normalized
    for pattern, availability in AVAILABILITY_PHRASES:
        if pattern.search(text):
            return availability
    return None
