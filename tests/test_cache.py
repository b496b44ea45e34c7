import pytest

from quire.cache import (
    CacheStore,
    DataLink,
    chain_key,
    link_file,
    matches_tail,
    parse_chain_key,
)
from quire.errors import CacheKeyError


def test_set_then_get_and_has():
    store = CacheStore()
    store.set(["out.html", "layout.jinja"], "<p>x</p>")
    assert store.has(["out.html", "layout.jinja"])
    assert store.get(["out.html", "layout.jinja"]) == "<p>x</p>"
    assert not store.has(["out.html"])
    assert store.get(["out.html"]) is None
    assert len(store) == 1


def test_chains_differing_only_in_data_are_distinct():
    store = CacheStore()
    store.set([DataLink("a", {"n": 1})], "x")
    store.set([DataLink("a", {"n": 2})], "y")
    assert store.get([DataLink("a", {"n": 1})]) == "x"
    assert store.get([DataLink("a", {"n": 2})]) == "y"
    assert len(store) == 2


def test_mapping_links_are_data_links():
    store = CacheStore()
    store.set(["p", {"file": "a", "data": {"y": 2, "x": 1}}], "v")
    assert store.get(["p", DataLink("a", {"x": 1, "y": 2})]) == "v"


def test_tuples_and_lists_produce_the_same_key():
    assert chain_key(("a", "b")) == chain_key(["a", "b"])


def test_tail_match_finds_entries_that_are_directly_the_file():
    store = CacheStore()
    store.set(["a", "k", "b"], 1)
    store.set(["p", "a", "b", "g", "b"], 2)
    store.set(["a", "b", "c"], 3)
    found = [chain for chain in store.find_by_parts("b") if matches_tail("b")(chain)]
    assert found == [["a", "k", "b"], ["p", "a", "b", "g", "b"]]


def test_find_by_parts_requires_every_part():
    store = CacheStore()
    for chain in (["a"], ["b", "a"], ["a", "c", "k"], ["a", "o", "d"], ["a", "b"], ["c", "a", "b"]):
        store.set(chain, "v")
    assert store.find_by_parts(["a", "b"]) == [["b", "a"], ["a", "b"], ["c", "a", "b"]]


def test_find_by_parts_matches_nested_files_by_substring():
    store = CacheStore()
    store.set(["/out/x.html", "/layouts/index.layout.jinja", DataLink("/inc/nav.jinja", {})], "nav")
    store.set(["/out/y.html"], "y")
    found = store.find_by_parts("/inc/nav.jinja")
    assert found == [["/out/x.html", "/layouts/index.layout.jinja", DataLink("/inc/nav.jinja", {})]]


def test_find_by_parts_data_part_matches_exact_data_only():
    store = CacheStore()
    store.set(["p", DataLink("a", {"n": 1})], 1)
    store.set(["p", DataLink("a", {"n": 2})], 2)
    assert store.find_by_parts(DataLink("a", {"n": 1})) == [["p", DataLink("a", {"n": 1})]]
    assert len(store.find_by_parts("a")) == 2


def test_bare_tail_matches_data_link_of_the_same_file():
    predicate = matches_tail("/inc/nav.jinja")
    assert predicate(["page", DataLink("/inc/nav.jinja", {"active": True})])
    assert not predicate(["page", DataLink("/inc/footer.jinja", {})])
    assert not predicate([DataLink("/inc/nav.jinja", {}), "page"])
    assert not matches_tail(DataLink("a", {"n": 1}))([DataLink("a", {"n": 2})])


def test_remove_drops_every_prefix():
    store = CacheStore()
    store.set(["a"], 1)
    store.set(["a", "b"], 2)
    store.set(["a", "b", "c"], 3)
    store.set(["a", "x"], 4)
    store.remove(["a", "b", "c"])
    assert not store.has(["a"])
    assert not store.has(["a", "b"])
    assert not store.has(["a", "b", "c"])
    assert store.get(["a", "x"]) == 4


def test_remove_ignores_missing_prefixes():
    store = CacheStore()
    store.set(["a", "b", "c"], 3)
    store.remove(["a", "b", "c"])
    store.remove(["z"])
    assert len(store) == 0


def test_stored_none_counts_and_set_replaces():
    store = CacheStore()
    store.set(["out.html", "layout.jinja", "a.md", "front-matter"], None)
    assert store.has(["out.html", "layout.jinja", "a.md", "front-matter"])
    assert not store.has(["out.html", "layout.jinja", "a.md"])

    store.set(["out.html"], "old")
    store.set(("out.html",), "new")
    assert store.get(["out.html"]) == "new"
    assert len(store) == 2


def test_clear_drops_everything():
    store = CacheStore()
    store.set(["a"], 1)
    store.set(["b", DataLink("c", {"k": "v"})], 2)
    store.clear()
    assert len(store) == 0
    assert list(store.chains()) == []


def test_parse_chain_key_restores_links():
    chain = ["out.html", DataLink("inc.jinja", {"items": [1, 2], "title": "T"}), "front-matter"]
    restored = parse_chain_key(chain_key(chain))
    assert restored == chain
    assert isinstance(restored[1], DataLink)
    assert link_file(restored[1]) == "inc.jinja"


@pytest.mark.parametrize(
    "chain",
    ["a", DataLink("a"), {"file": "a"}, [], (), 42, None],
)
def test_chain_must_be_a_non_empty_sequence(chain):
    with pytest.raises(CacheKeyError):
        chain_key(chain)


def test_reserved_delimiters_are_rejected():
    with pytest.raises(CacheKeyError):
        chain_key(["a\x1fb"])
    with pytest.raises(CacheKeyError):
        chain_key([DataLink("a\x1eb", {})])


def test_delimiters_inside_data_are_escaped_by_json():
    key = chain_key([DataLink("a", {"text": "x\x1fy"})])
    assert parse_chain_key(key) == [DataLink("a", {"text": "x\x1fy"})]


def test_unserializable_data_is_rejected():
    with pytest.raises(CacheKeyError) as excinfo:
        chain_key([DataLink("a", {"bad": object()})])
    assert isinstance(excinfo.value, ValueError)


def test_unsupported_links_are_rejected():
    with pytest.raises(CacheKeyError):
        chain_key([3])
