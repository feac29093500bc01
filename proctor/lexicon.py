from enum import Enum
from functools import lru_cache
from typing import Dict, Iterable, Tuple


class Category(str, Enum):
    PHONE = "phone"
    BOOK = "book"
    ELECTRONIC = "electronic"
    WRITING = "writing"
    CONTAINER = "container"
    PERSON = "person"
    FURNITURE = "furniture"
    UNKNOWN = "unknown"


PHONE_TERMS: Tuple[str, ...] = (
    "cell phone",
    "mobile phone",
    "phone",
    "smartphone",
    "iphone",
    "android",
)
BOOK_TERMS: Tuple[str, ...] = ("book", "notebook", "paper", "magazine", "journal", "textbook")
ELECTRONIC_TERMS: Tuple[str, ...] = (
    "tv",
    "remote",
    "laptop",
    "mouse",
    "keyboard",
    "tablet",
    "ipad",
)
WRITING_TERMS: Tuple[str, ...] = ("pencil", "pen", "marker", "highlighter", "eraser")
CONTAINER_TERMS: Tuple[str, ...] = (
    "cup",
    "bottle",
    "bag",
    "backpack",
    "wallet",
    "purse",
    "calculator",
)
FURNITURE_TERMS: Tuple[str, ...] = ("chair", "desk", "wall", "window", "door")

# Labels an object model commonly assigns to a phone it failed to recognize.
MISCLASSIFIABLE_TERMS: Tuple[str, ...] = ("remote", "book", "bottle", "cup")

# Lookup order matters: phones are electronics too, but must win.
_LEXICON: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.PHONE, PHONE_TERMS),
    (Category.BOOK, BOOK_TERMS),
    (Category.ELECTRONIC, ELECTRONIC_TERMS),
    (Category.WRITING, WRITING_TERMS),
    (Category.CONTAINER, CONTAINER_TERMS),
    (Category.FURNITURE, FURNITURE_TERMS),
)

_EXACT: Dict[str, Category] = {"person": Category.PERSON}
for _category, _terms in _LEXICON:
    for _term in _terms:
        _EXACT.setdefault(_term, _category)

TRACKED_TYPE_TERMS: Dict[str, Tuple[str, ...]] = {
    "mobile": ("cell phone", "mobile phone", "phone", "smartphone"),
    "book": BOOK_TERMS,
    "remote": ("remote", "tv remote"),
    "cup": ("cup", "mug", "bottle"),
}


def normalize_label(label: str) -> str:
    return " ".join(label.strip().lower().split())


def label_matches(label: str, terms: Iterable[str]) -> bool:
    # Either string may contain the other; model labels are unconstrained.
    name = normalize_label(label)
    if not name:
        return False
    for term in terms:
        candidate = normalize_label(term)
        if candidate and (candidate in name or name in candidate):
            return True
    return False


@lru_cache(maxsize=512)
def classify_label(label: str) -> Category:
    name = normalize_label(label)
    if not name:
        return Category.UNKNOWN
    exact = _EXACT.get(name)
    if exact is not None:
        return exact
    for category, terms in _LEXICON:
        if label_matches(name, terms):
            return category
    return Category.UNKNOWN


def is_phone(label: str) -> bool:
    return classify_label(label) is Category.PHONE


def is_person(label: str) -> bool:
    return normalize_label(label) == "person"


def is_misclassifiable(label: str) -> bool:
    return label_matches(label, MISCLASSIFIABLE_TERMS)


def is_known(label: str) -> bool:
    return classify_label(label) is not Category.UNKNOWN


def terms_for_type(object_type: str) -> Tuple[str, ...]:
    return TRACKED_TYPE_TERMS.get(normalize_label(object_type), (object_type,))
