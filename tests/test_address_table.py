import json

import pytest

from address_table import (
    AddressTable,
    load_address_table,
    load_hosts_file,
    load_map_file,
    parse_host_pairs,
    parse_map_lines,
)


def test_build_later_source_wins():
    table = AddressTable.build(
        [("a.com", "10.0.0.1"), ("b.com", "10.0.0.2")],
        [("a.com", "10.0.0.9")],
    )
    assert table.get("a.com") == "10.0.0.9"
    assert table.get("b.com") == "10.0.0.2"
    assert len(table) == 2


def test_build_without_sources_is_empty():
    table = AddressTable.build()
    assert len(table) == 0
    assert table.get("anything") is None


def test_table_is_read_only():
    table = AddressTable.build([("a.com", "10.0.0.1")])
    with pytest.raises(TypeError):
        table["a.com"] = "10.0.0.2"  # type: ignore[index]


def test_table_does_not_follow_source_mutation():
    source = {"a.com": "10.0.0.1"}
    table = AddressTable(source)
    source["a.com"] = "10.0.0.2"
    assert table["a.com"] == "10.0.0.1"


def test_parse_map_lines_skips_malformed():
    lines = [
        "a.com:443 = 10.0.0.1:8443\n",
        "no separator here\n",
        "\n",
        "=orphan-value\n",
        "b.com=10.0.0.2=ignored\n",
    ]
    assert parse_map_lines(lines) == [
        ("a.com:443", "10.0.0.1:8443"),
        ("b.com", "10.0.0.2"),
    ]


def test_parse_host_pairs_inverts_order_and_skips_malformed():
    items = [
        ["10.0.0.1", "a.com"],
        ["10.0.0.2"],
        "not-a-pair",
        [1, "b.com"],
        [" 10.0.0.3 ", " c.com ", "extra"],
    ]
    assert parse_host_pairs(items) == [("a.com", "10.0.0.1"), ("c.com", "10.0.0.3")]


def test_parse_host_pairs_rejects_non_list():
    assert parse_host_pairs({"a.com": "10.0.0.1"}) == []


def test_load_missing_files(tmp_path):
    assert load_map_file(str(tmp_path / "map.txt")) == []
    assert load_hosts_file(str(tmp_path / "hosts.json")) == []


def test_load_invalid_json(tmp_path):
    path = tmp_path / "hosts.json"
    path.write_text("[[not json")
    assert load_hosts_file(str(path)) == []


def test_load_address_table_hosts_file_overrides_map_file(tmp_path):
    map_file = tmp_path / "map.txt"
    map_file.write_text("a.com=10.0.0.1\nb.com:443=10.0.0.2:8443\n")
    hosts_file = tmp_path / "hosts.json"
    hosts_file.write_text(json.dumps([["10.9.9.9", "a.com"], ["10.0.0.3", "c.com"]]))

    table = load_address_table(str(map_file), str(hosts_file))

    assert dict(table) == {
        "a.com": "10.9.9.9",
        "b.com:443": "10.0.0.2:8443",
        "c.com": "10.0.0.3",
    }


def test_load_address_table_with_no_sources():
    assert len(load_address_table(None, None)) == 0
