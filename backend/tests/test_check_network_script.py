from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest

from scripts.check_network import build_parser, main, run_check
from smartroute.registry import CONNECTIONS_FILE, load_registry
from smartroute.settings import settings


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.data_dir is None
    assert args.repair is False
    assert args.max_passes == settings.connectivity_repair_passes
    assert args.fail_on_problems is False


def test_run_check_reports_shipped_catalogs() -> None:
    report = run_check(data_dir=None)
    assert report["cities"] == 24
    assert report["hubs"] == 9
    assert report["connections"] > 0
    assert "repair" not in report

    rejected = {item["connection_id"]: item for item in report["rejected_connections"]}
    assert "ferry-yakutsk-nizhny-bestyakh" in rejected
    assert "km/h" in rejected["ferry-yakutsk-nizhny-bestyakh"]["reason"]

    connectivity = report["connectivity"]
    covered = {c for component in connectivity["components"] for c in component} | set(connectivity["isolated_cities"])
    assert len(covered) == 24


def test_run_check_with_repair_lists_added_edges() -> None:
    report = run_check(data_dir=None, repair=True, max_passes=3)
    repair = report["repair"]
    assert repair["component_count"] <= report["connectivity"]["component_count"]
    for edge in repair["added_connections"]:
        assert edge["id"].startswith("connectivity-")


def test_main_writes_report_and_fails_on_problems(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    out = tmp_path / "reports" / "network.json"
    code = main(["--out", str(out), "--fail-on-problems"])
    # The shipped catalog carries at least one implausible connection.
    assert code == 1

    written = json.loads(out.read_text(encoding="utf-8"))
    printed = json.loads(capsys.readouterr().out)
    assert written == printed
    assert written["cities"] == 24


def test_main_accepts_custom_data_dir(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    shutil.copytree(Path(settings.reference_data_dir), data_dir)
    assert main(["--data-dir", str(data_dir)]) == 0
    assert run_check(data_dir=data_dir)["data_dir"] == str(data_dir)


def test_report_lists_each_rejected_catalog_entry_once(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    shutil.copytree(Path(settings.reference_data_dir), data_dir)
    catalog_path = data_dir / CONNECTIONS_FILE
    catalog = json.loads(catalog_path.read_text(encoding="utf-8"))
    catalog["connections"].append(
        {
            "id": "bus-yakutsk-moscow",
            "type": "bus",
            "from_city_id": "yakutsk",
            "to_city_id": "moscow",
            "distance_km": 4900,
            "duration_min": 5000,
            "base_price": 15000,
        }
    )
    catalog_path.write_text(json.dumps(catalog, ensure_ascii=False), encoding="utf-8")

    report = run_check(data_dir=data_dir)
    ids = [item["connection_id"] for item in report["rejected_connections"]]
    assert len(ids) == len(set(ids)) == len(load_registry(data_dir).rejected)
    assert "bus-yakutsk-moscow" in ids
    assert "ferry-yakutsk-nizhny-bestyakh" in ids
