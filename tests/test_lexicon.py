import pytest

from proctor.lexicon import (
    Category,
    classify_label,
    is_known,
    is_misclassifiable,
    is_person,
    is_phone,
    label_matches,
    terms_for_type,
)


@pytest.mark.parametrize(
    "label, category",
    [
        ("cell phone", Category.PHONE),
        ("Smartphone", Category.PHONE),
        ("notebook", Category.BOOK),
        ("laptop", Category.ELECTRONIC),
        ("tv remote", Category.ELECTRONIC),
        ("highlighter", Category.WRITING),
        ("water bottle", Category.CONTAINER),
        ("chair", Category.FURNITURE),
        ("person", Category.PERSON),
        ("gizmo", Category.UNKNOWN),
        ("", Category.UNKNOWN),
    ],
)
def test_classify_label(label, category):
    assert classify_label(label) is category


def test_label_matches_is_loose_both_ways():
    assert label_matches("cell phone case", ["cell phone"])
    assert label_matches("phone", ["cell phone"])
    assert not label_matches("", ["phone"])
    assert not label_matches("desk", ["phone", "book"])


def test_predicates():
    assert is_phone("Mobile Phone")
    assert not is_phone("remote")
    assert is_person(" Person ")
    assert not is_person("personal item")
    assert is_misclassifiable("cup")
    assert not is_misclassifiable("chair")
    assert is_known("pen")
    assert not is_known("gizmo")


def test_terms_for_type():
    assert "smartphone" in terms_for_type("mobile")
    assert terms_for_type("Book") == terms_for_type("book")
    assert terms_for_type("watch") == ("watch",)
