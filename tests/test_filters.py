# tests/test_filters.py — дерево фильтров и каскадное снятие выбора
import json

import pytest

from filters.selection import FilterSelection
from filters.taxonomy import load_taxonomy
from services.errors import InvalidSelection


def test_taxonomy_indexes_parents(taxonomy):
    assert taxonomy.parent_of("creditTypes") == ("buyingTypes", "Credit")
    assert taxonomy.parent_of("find") is None
    assert taxonomy.descendants_of("fields", "Commercial")[:3] == [
        "commercialTypes",
        "commercialRetailTypes",
        "commercialMallTypes",
    ]


def test_duplicate_category_key_rejected(tmp_path):
    doc = {
        "categories": [
            {"key": "a", "label": "A", "options": [{"label": "x", "children": [
                {"key": "a", "label": "Again", "options": [{"label": "y"}]}
            ]}]},
        ]
    }
    path = tmp_path / "taxonomy.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    with pytest.raises(ValueError):
        load_taxonomy(path)


def test_child_hidden_until_parent_selected(taxonomy):
    selection = FilterSelection.empty(taxonomy)
    assert not selection.is_visible("buyingTypes")
    selection = selection.toggle("representation", "Buying")
    assert selection.is_visible("buyingTypes")
    assert not selection.is_visible("creditTypes")


def test_deselect_clears_all_descendants(taxonomy):
    selection = (
        FilterSelection.empty(taxonomy)
        .toggle("fields", "Commercial")
        .toggle("commercialTypes", "Retail")
        .toggle("commercialRetailTypes", "Mall")
        .toggle("commercialMallTypes", "Strip")
        .toggle("fields", "Residential")
    )
    after = selection.toggle("fields", "Commercial")
    assert after.as_dict() == {"fields": ["Residential"]}
    # исходный выбор не изменился
    assert selection.selected("commercialMallTypes") == ["Strip"]


def test_deselect_keeps_sibling_branches(taxonomy):
    selection = (
        FilterSelection.empty(taxonomy)
        .toggle("representation", "Buying")
        .toggle("buyingTypes", "Credit")
        .toggle("creditTypes", "Need Loan")
        .toggle("representation", "Institution")
        .toggle("institutionTypes", "Bank")
    )
    after = selection.toggle("buyingTypes", "Credit")
    assert "creditTypes" not in after.as_dict()
    assert after.selected("institutionTypes") == ["Bank"]
    assert after.selected("representation") == ["Buying", "Institution"]


def test_selecting_under_hidden_parent_rejected(taxonomy):
    with pytest.raises(InvalidSelection) as exc:
        FilterSelection.empty(taxonomy).toggle("creditTypes", "Need Loan")
    assert exc.value.field == "creditTypes"


def test_unknown_option_rejected(taxonomy):
    with pytest.raises(InvalidSelection):
        FilterSelection.empty(taxonomy).toggle("find", "Spaceship")


def test_constructor_rejects_orphan_child(taxonomy):
    with pytest.raises(InvalidSelection) as exc:
        FilterSelection(taxonomy, {"buyingTypes": ["Cash"]})
    assert "Buying" in exc.value.message


def test_query_roundtrip_keeps_labels_with_commas(taxonomy):
    selection = FilterSelection.empty(taxonomy).toggle("fields", "Commercial").toggle("fields", "Other")
    params: dict[str, list[str]] = {}
    for key, label in selection.to_query():
        params.setdefault(key, []).append(label)
    params["sort"] = ["rating"]
    assert FilterSelection.from_query(taxonomy, params) == selection


def test_options_kept_in_taxonomy_order(taxonomy):
    selection = FilterSelection(taxonomy, {"find": ["Agency", "Service"]})
    assert selection.selected("find") == ["Service", "Agency"]


def test_deselect_middle_level_keeps_root(taxonomy):
    selection = (
        FilterSelection.empty(taxonomy)
        .toggle("fields", "Commercial")
        .toggle("commercialTypes", "Retail")
        .toggle("commercialRetailTypes", "Mall")
        .toggle("commercialMallTypes", "Strip")
    )
    after = selection.toggle("commercialTypes", "Retail")
    assert after.as_dict() == {"fields": ["Commercial"]}
    assert not after.is_visible("commercialMallTypes")


def _branch_options(taxonomy):
    for key in taxonomy.keys():
        for option in taxonomy.category(key).options:
            if option.children:
                yield key, option.label


def _ancestors(taxonomy, key: str) -> dict[str, list[str]]:
    chain: dict[str, list[str]] = {}
    parent = taxonomy.parent_of(key)
    while parent is not None:
        chain[parent[0]] = [parent[1]]
        parent = taxonomy.parent_of(parent[0])
    return chain


def test_every_branch_deselect_clears_descendants(taxonomy):
    branches = list(_branch_options(taxonomy))
    assert branches
    for key, label in branches:
        descendants = taxonomy.descendants_of(key, label)
        picked = _ancestors(taxonomy, key)
        picked[key] = [label]
        for child in descendants:
            picked[child] = [o.label for o in taxonomy.category(child).options]
        selection = FilterSelection(taxonomy, picked)
        assert all(selection.selected(child) for child in descendants)

        after = selection.toggle(key, label)
        assert not after.is_selected(key, label)
        for child in descendants:
            assert after.selected(child) == [], (key, label, child)
        for ancestor, labels in _ancestors(taxonomy, key).items():
            assert after.selected(ancestor) == labels
