from pathlib import Path
import json

from ggr_monitor.infrastructure.storage.mapping_store import load_mapping, save_mapping


def test_save_and_load_mapping(tmp_path: Path):
    path = tmp_path / "header_mapping_override.json"
    merged = save_mapping({"  Gross  Handle ": "Stake"}, path=path)
    assert merged["gross handle"] == "stake"
    assert merged["operator"] == "operator_name"
    assert json.loads(path.read_text()) == {"gross handle": "stake"}

    loaded = load_mapping(path=path)
    assert loaded["gross handle"] == "stake"


def test_unknown_fields_are_ignored(tmp_path: Path):
    path = tmp_path / "header_mapping_override.json"
    path.write_text(json.dumps({"Licence Fee": "fee", "Punter Wins": "payout"}))

    loaded = load_mapping(path=path)

    assert "licence fee" not in loaded
    assert loaded["punter wins"] == "payout"


def test_broken_override_falls_back_to_defaults(tmp_path: Path):
    path = tmp_path / "header_mapping_override.json"
    path.write_text("{not json")

    assert load_mapping(path=path) == load_mapping(path=tmp_path / "missing.json")


def test_override_replaces_builtin_label(tmp_path: Path):
    path = tmp_path / "header_mapping_override.json"

    merged = save_mapping({"Operator": "operator_id"}, path=path)

    assert merged["operator"] == "operator_id"
    assert load_mapping(path=path)["operator"] == "operator_id"
    assert load_mapping(path=tmp_path / "missing.json")["operator"] == "operator_name"
