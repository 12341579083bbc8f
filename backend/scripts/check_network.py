from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from smartroute.connectivity import check_connectivity, guarantee_connectivity
from smartroute.registry import load_registry
from smartroute.settings import settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Report connectivity and data-quality problems of the transport network.")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Reference data directory (defaults to REFERENCE_DATA_DIR).",
    )
    parser.add_argument("--repair", action="store_true", help="Also report the edges that would restore connectivity.")
    parser.add_argument(
        "--max-passes",
        type=int,
        default=settings.connectivity_repair_passes,
        help="Repair passes to run when --repair is set.",
    )
    parser.add_argument("--out", type=Path, default=None, help="Write the JSON report here as well as to stdout.")
    parser.add_argument(
        "--fail-on-problems",
        action="store_true",
        help="Exit with status 1 when the network is disconnected or connections were rejected.",
    )
    return parser


def run_check(
    *,
    data_dir: Path | None,
    repair: bool = False,
    max_passes: int = 1,
) -> dict[str, Any]:
    registry = load_registry(data_dir)
    report = check_connectivity(registry)
    invalid = registry.rejected

    out: dict[str, Any] = {
        "data_dir": str(data_dir) if data_dir is not None else settings.reference_data_dir,
        "cities": len(registry.cities),
        "hubs": len(registry.hubs),
        "connections": len(registry.connections),
        "rejected_connections": [
            {
                "connection_id": item.connection.id,
                "type": item.connection.type,
                "from_city_id": item.connection.from_city_id,
                "to_city_id": item.connection.to_city_id,
                "reason": item.reason,
                "recommendations": list(item.recommendations),
            }
            for item in invalid
        ],
        "connectivity": {
            "is_connected": report.is_connected,
            "component_count": report.component_count,
            "components": [list(c) for c in report.components],
            "isolated_cities": list(report.isolated_cities),
        },
    }
    if repair:
        repaired = guarantee_connectivity(registry, max_passes=max_passes)
        out["repair"] = {
            "is_connected": repaired.is_connected,
            "component_count": repaired.component_count,
            "added_connections": [edge.model_dump(mode="json") for edge in repaired.added_connections],
        }
    return out


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    report = run_check(
        data_dir=args.data_dir,
        repair=bool(args.repair),
        max_passes=max(1, int(args.max_passes)),
    )
    text = json.dumps(report, indent=2, ensure_ascii=False)
    if args.out is not None:
        args.out.parent.mkdir(parents=True, exist_ok=True)
        args.out.write_text(text, encoding="utf-8")
    print(text)
    if args.fail_on_problems and (report["rejected_connections"] or not report["connectivity"]["is_connected"]):
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
