#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import List, Optional

REPO_ROOT = Path(__file__).resolve().parent


def _load_dotenv(path: Path) -> int:
    """
    Load a .env file into process environment (without overriding existing vars).
    """
    if not path.exists():
        return 0
    loaded = 0
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip()
        if not key or key in os.environ:
            continue
        if (len(value) >= 2) and ((value[0] == value[-1]) and value[0] in {"'", '"'}):
            value = value[1:-1]
        os.environ[key] = value
        loaded += 1
    return loaded


def _default_db() -> Optional[str]:
    return os.getenv("DB_CONN_STRING") or os.getenv("DATABASE_URL")


def _cmd_metrics_snapshot(ns: argparse.Namespace) -> int:
    # Import lazily to keep CLI startup fast.
    import yaml

    from metrics.config import load_metrics_config
    from metrics.job_snapshot import run_snapshot_job
    from metrics.sinks.sqlite import SQLiteMetricsSink
    from metrics.snapshot import get_metrics_summary, safe_parse_metrics_snapshot

    try:
        config = load_metrics_config(Path(ns.config) if ns.config else None)
        result = run_snapshot_job(
            db_url=ns.db,
            config=config,
            fetch_productivity_data=not ns.skip_productivity,
        )
    except (ValueError, yaml.YAMLError) as exc:
        logging.error("%s", exc)
        return 1

    if result.error:
        logging.error("Snapshot capture failed: %s", result.error)
    logging.info(
        "Captured %d snapshots (org=%s, domains=%d, teams=%d)",
        result.snapshots_created,
        result.details.get("org"),
        len(result.details.get("domains") or []),
        len(result.details.get("teams") or []),
    )

    if result.details.get("org"):
        sink = SQLiteMetricsSink(ns.db or _default_db() or "")
        try:
            record = sink.get_latest_metrics_snapshot("org")
        finally:
            sink.close()
        snapshot = safe_parse_metrics_snapshot(record.metrics_json if record else None)
        if snapshot is not None:
            print(get_metrics_summary(snapshot))

    return 0 if result.success else 1


def _cmd_metrics_latest(ns: argparse.Namespace) -> int:
    from metrics.sinks.sqlite import SQLiteMetricsSink
    from metrics.snapshot import get_metrics_summary, safe_parse_metrics_snapshot

    db_url = ns.db or _default_db()
    if not db_url:
        logging.error("Database URI is required (pass --db or set DB_CONN_STRING).")
        return 1
    if ns.level != "org" and not ns.level_id:
        logging.error("--level-id is required for level '%s'", ns.level)
        return 1

    sink = SQLiteMetricsSink(db_url)
    try:
        sink.ensure_tables()
        record = sink.get_latest_metrics_snapshot(
            ns.level, None if ns.level == "org" else ns.level_id
        )
    finally:
        sink.close()

    if record is None:
        logging.error("No metrics snapshot found for level '%s'", ns.level)
        return 1
    snapshot = safe_parse_metrics_snapshot(record.metrics_json)
    if snapshot is None:
        logging.error("Stored snapshot %d could not be parsed", record.id)
        return 1

    scope = f"{record.level}:{record.level_id}" if record.level_id else record.level
    print(f"Captured at {record.captured_at} ({scope})")
    print(get_metrics_summary(snapshot))
    return 0


def _cmd_api(ns: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "linear_health_ops.api.main:app",
        host=ns.host,
        port=ns.port,
        log_level=str(ns.log_level).lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linear-health-ops",
        description="Capture and inspect engineering health metrics snapshots.",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING). Defaults to env LOG_LEVEL or INFO.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # ---- metrics ----
    metrics = sub.add_parser("metrics", help="Capture and read metrics snapshots.")
    metrics_sub = metrics.add_subparsers(dest="metrics_command", required=True)

    snapshot = metrics_sub.add_parser(
        "snapshot", help="Capture org, domain and team snapshots once."
    )
    snapshot.add_argument(
        "--db",
        default=_default_db(),
        help="Tracker DB URI (snapshots are written to the same DB).",
    )
    snapshot.add_argument(
        "--config",
        default=os.getenv("METRICS_CONFIG"),
        help="Optional YAML metrics config (env vars still take precedence).",
    )
    snapshot.add_argument(
        "--skip-productivity",
        action="store_true",
        help="Do not query GetDX; productivity is recorded as pending.",
    )
    snapshot.set_defaults(func=_cmd_metrics_snapshot)

    latest = metrics_sub.add_parser(
        "latest", help="Print the latest stored snapshot for a level."
    )
    latest.add_argument("--db", default=_default_db(), help="Snapshot DB URI.")
    latest.add_argument(
        "--level", choices=["org", "domain", "team"], default="org"
    )
    latest.add_argument("--level-id", help="Domain name or team key.")
    latest.set_defaults(func=_cmd_metrics_latest)

    # ---- api ----
    api = sub.add_parser("api", help="Serve the read API.")
    api.add_argument("--host", default=os.getenv("API_HOST", "127.0.0.1"))
    api.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")))
    api.set_defaults(func=_cmd_api)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    if os.getenv("DISABLE_DOTENV", "").strip().lower() not in {
        "1",
        "true",
        "yes",
        "on",
    }:
        _load_dotenv(REPO_ROOT / ".env")

    parser = build_parser()
    ns = parser.parse_args(argv)

    level_name = str(getattr(ns, "log_level", "") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    func = getattr(ns, "func", None)
    if func is None:
        parser.print_help()
        return 2
    return int(func(ns))


if __name__ == "__main__":
    raise SystemExit(main())
