# === NAVMAP v1 ===
# {
#   "module": "tests.registry.test_documents",
#   "purpose": "YAML codec, tree, merge and document helper coverage",
#   "sections": [
#     {"id": "tree", "name": "Tree", "anchor": "TRE", "kind": "tests"},
#     {"id": "merge", "name": "Merge Rules", "anchor": "MRG", "kind": "tests"},
#     {"id": "codec", "name": "YAML Codec", "anchor": "YML", "kind": "tests"},
#     {"id": "identity", "name": "Document Identity", "anchor": "IDN", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Coverage for the building blocks shared by every registry phase."""

from __future__ import annotations

import pytest

from APIDirectory.Registry.documents import (
    clean_version,
    count_endpoints,
    detect_format,
    major_minor,
    normalise_info_version,
    sort_document,
    yaml_dump,
    yaml_parse,
)
from APIDirectory.Registry.errors import DocumentValidationError
from APIDirectory.Registry.merge import deep_overlay, merge_entry
from APIDirectory.Registry.tree import Tree, sort_tree


# --- Tree ---


def test_tree_path_creates_levels_but_item_access_does_not() -> None:
    tree = Tree()
    tree.path(["example.com", "mail"])["v1"] = {"status": 404}

    assert tree.to_dict() == {"example.com": {"mail": {"v1": {"status": 404}}}}
    assert type(tree.to_dict()["example.com"]) is dict
    assert not tree.has("other.com")
    with pytest.raises(KeyError):
        tree["other.com"]
    assert "other.com" not in tree


def test_tree_child_refuses_to_descend_into_scalars() -> None:
    tree = Tree(driver="url")
    with pytest.raises(TypeError):
        tree.child("driver")


def test_tree_child_upgrades_plain_mappings() -> None:
    tree = Tree(info={"title": "x"})
    tree.child("info")["x-logo"] = {"url": "logo.png"}
    assert isinstance(tree["info"], Tree)
    assert tree.to_dict() == {"info": {"title": "x", "x-logo": {"url": "logo.png"}}}


def test_sort_tree_orders_keys_and_keeps_list_order() -> None:
    result = sort_tree({"b": {"z": 1, "y": [3, 1, 2]}, "a": 1})
    assert list(result) == ["a", "b"]
    assert list(result["b"]) == ["y", "z"]
    assert result["b"]["y"] == [3, 1, 2]


# --- Merge Rules ---


def test_merge_entry_preserves_bookkeeping_and_skips_none() -> None:
    old = {"added": "2020-01-01T00:00:00.000Z", "preferred": True, "hash": "1", "statusCode": 404}
    merged = merge_entry(old, {"hash": "2", "preferred": None, "run": "now"})

    assert merged == {
        "added": "2020-01-01T00:00:00.000Z",
        "preferred": True,
        "hash": "2",
        "statusCode": 404,
        "run": "now",
    }
    assert old["hash"] == "1"


def test_merge_entry_accepts_missing_old_entry() -> None:
    assert merge_entry(None, {"name": "openapi.yaml", "preferred": None}) == {"name": "openapi.yaml"}


def test_deep_overlay_replaces_lists_and_leaves_inputs_untouched() -> None:
    base = {"info": {"title": "Example", "x-apisguru-categories": ["cloud"]}}
    patch = {"info": {"x-apisguru-categories": ["email"], "x-logo": {"url": "logo.png"}}}

    result = deep_overlay(base, patch)

    assert result == {
        "info": {
            "title": "Example",
            "x-apisguru-categories": ["email"],
            "x-logo": {"url": "logo.png"},
        }
    }
    assert base["info"]["x-apisguru-categories"] == ["cloud"]
    result["info"]["x-logo"]["url"] = "changed.png"
    assert patch["info"]["x-logo"]["url"] == "logo.png"


def test_deep_overlay_scalar_patch_wins() -> None:
    assert deep_overlay({"a": {"b": 1}}, {"a": 2}) == {"a": 2}


# --- YAML Codec ---


def test_yaml_parse_keeps_timestamps_as_strings() -> None:
    text = "added: 2020-01-01T00:00:00.000Z\nday: 2021-02-03\n"
    data = yaml_parse(text)

    assert data == {"added": "2020-01-01T00:00:00.000Z", "day": "2021-02-03"}
    assert yaml_parse(yaml_dump(data)) == data


def test_yaml_parse_accepts_tab_indented_json() -> None:
    text = '{\n\t"openapi": "3.0.0",\n\t"info": {"title": "t", "version": "1"}\n}'
    assert yaml_parse(text) == {"openapi": "3.0.0", "info": {"title": "t", "version": "1"}}


def test_yaml_parse_raises_when_neither_codec_applies() -> None:
    with pytest.raises(DocumentValidationError):
        yaml_parse("key: [unclosed")
    with pytest.raises(DocumentValidationError):
        yaml_parse("key: [unclosed", lenient=False)


def test_yaml_dump_never_folds_or_reorders() -> None:
    description = " ".join(["word"] * 200)
    text = yaml_dump({"z": 1, "description": description, "a": Tree(b=2)})

    assert text.splitlines()[0] == "z: 1"
    assert f"description: {description}" in text.splitlines()
    assert text.endswith("a:\n  b: 2\n")


def test_yaml_dump_emits_no_anchors_for_shared_objects() -> None:
    shared = {"url": "https://example.com"}
    text = yaml_dump({"source": shared, "history": [shared]})
    assert "&" not in text
    assert "*" not in text


# --- Document Identity ---


def test_clean_version_and_major_minor() -> None:
    assert clean_version("2019-01-01/preview:beta.*") == "2019-01-01-previewbeta"
    assert clean_version(1.5) == "1.5"
    for unusable in (".", "..", ""):
        with pytest.raises(DocumentValidationError):
            clean_version(unusable)
    assert major_minor("3.0.3") == "3.0"
    assert major_minor("3.1") == "3.1"
    assert major_minor("not-a-version") == "not-a-version"


def test_count_endpoints_across_formats() -> None:
    assert count_endpoints({"paths": {"/a": {}, "/b": {}}}) == 2
    assert count_endpoints({"webhooks": {"created": {}}}) == 1
    assert count_endpoints({"topics": {"t": {}}}) == 1
    assert count_endpoints({"channels": {"c1": {}, "c2": {}, "c3": {}}}) == 3
    assert count_endpoints({"info": {}}) == 0


@pytest.mark.parametrize(
    "document, expected",
    [
        ({"openapi": "3.0.3"}, ("openapi", "3.0")),
        ({"swagger": "2.0"}, ("swagger", "2.0")),
        ({"asyncapi": "2.6.0"}, ("asyncapi", "2.6")),
        ({"discoveryVersion": "v1"}, ("google", "v1")),
        ({"info": {"_postman_id": "abc"}}, ("postman", "2.x")),
        ({"id": "abc", "requests": []}, None),
        ({"id": "abc", "requests": [{}]}, ("postman", "1.0")),
        ({}, None),
        (None, None),
    ],
)
def test_detect_format(document, expected) -> None:
    assert detect_format(document) == expected


def test_sort_document_lifts_well_known_fields() -> None:
    document = {
        "x-extra": 1,
        "paths": {"/b": {}, "/a": {}},
        "info": {"version": "1", "title": "t"},
        "components": {},
        "openapi": "3.0.0",
        "servers": [{"url": "https://b"}, {"url": "https://a"}],
    }

    result = sort_document(document)

    assert list(result) == ["openapi", "servers", "info", "paths", "components", "x-extra"]
    assert list(result["info"]) == ["title", "version"]
    assert list(result["paths"]) == ["/a", "/b"]
    assert result["servers"] == [{"url": "https://b"}, {"url": "https://a"}]


def test_sort_document_only_sorts_unknown_formats() -> None:
    assert list(sort_document({"b": 1, "a": 2})) == ["a", "b"]


@pytest.mark.parametrize(
    "info, expected",
    [
        ({"version": 1.0}, "1.0"),
        ({"version": "2."}, "2"),
        ({"version": "version"}, "1.0.0"),
        ({"version": ""}, "1.0.0"),
        ({}, "1.0.0"),
        ({"version": "2019-01-01"}, "2019-01-01"),
    ],
)
def test_normalise_info_version(info, expected) -> None:
    document = {"info": dict(info)}
    assert normalise_info_version(document, "1.0.0") == expected
    assert document["info"]["version"] == expected


def test_normalise_info_version_creates_info() -> None:
    document: dict = {}
    assert normalise_info_version(document, "0.1") == "0.1"
    assert document == {"info": {"version": "0.1"}}
