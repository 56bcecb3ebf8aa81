import json

import pytest

from service.cli import _parse_kv_pairs, main

OFFLINE = ["--set", "sqlite_path=none", "enable_stub=true", "skip_network=true"]


def test_parse_kv_pairs_decodes_json_values():
    assert _parse_kv_pairs(["limit=5", "remote=true", "query=data engineer", "sources=[\"stub\"]"]) == {
        "limit": 5,
        "remote": True,
        "query": "data engineer",
        "sources": ["stub"],
    }


def test_parse_kv_pairs_rejects_bad_items():
    import argparse

    with pytest.raises(argparse.ArgumentTypeError):
        _parse_kv_pairs(["novalue"])


def test_providers_lists_registry_and_regional(capsys):
    assert main(["providers", *OFFLINE]) == 0
    out = capsys.readouterr().out
    for pid in ("remoteok", "adzuna", "jsearch", "themuse", "ausbildung", "stub", "morocco"):
        assert pid in out


def test_search_json(capsys):
    items = json.dumps([{"id": "7", "title": "Welder", "company": "Forge"}])
    code = main(["search", "--kwargs", "query=welder", "--json", *OFFLINE, f"stub_items={items}"])
    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["total"] == 1
    assert payload["jobs"][0]["id"] == "stub_7"
    assert payload["sources"] == ["stub"]


def test_search_table(capsys):
    assert main(["search", "--kwargs", "query=nothing", *OFFLINE]) == 0
    out = capsys.readouterr().out
    assert "TITLE" in out
    assert "total=0 page=1/0" in out


def test_get_unknown_job(capsys):
    assert main(["get", "remoteok_1", *OFFLINE]) == 1
    assert "Not found: remoteok_1" in capsys.readouterr().err


def test_clear_and_purge(capsys):
    assert main(["clear", "all", *OFFLINE]) == 0
    removed = json.loads(capsys.readouterr().out)
    assert removed["search"] == {"memory": 0, "persistent": 0}
    assert main(["purge", *OFFLINE]) == 0
    assert "purged 0" in capsys.readouterr().out


def test_invalid_settings_exit_code(capsys):
    assert main(["providers", "--set", "max_threads=0"]) == 2
    assert "max_threads" in capsys.readouterr().err
