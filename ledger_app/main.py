"""Headless entry point for the usage ledger.

The terminal stands in for the host page: every line typed on stdin counts
as a user interaction. ``export`` writes the usage report and ``quit`` (or
EOF / Ctrl+C) stops tracking after a final flush.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from ledger_app.ledger import __version__
from ledger_app.ledger.controllers import CONFIG_DIR, ConfigManager, LedgerController, build_controller
from ledger_app.ledger.models import Snapshot
from reports.excel_export import UsageReportExporter

LOG_DIR = CONFIG_DIR / "logs"
LOG_FILE = LOG_DIR / "app.log"

LOGGER = logging.getLogger(__name__)


def configure_logging() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(LOG_FILE, maxBytes=1024 * 1024, backupCount=3)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[handler, logging.StreamHandler()],
    )
    logging.info("Usage Ledger v%s starting", __version__)


def _log_snapshot(snapshot: Snapshot) -> None:
    goal = f" | goal: {snapshot.goal.label or snapshot.goal.status}" if snapshot.goal.active else ""
    LOGGER.info(
        "Today %s | week %ss | month %ss | sessions %s | streak %s%s",
        snapshot.today_display,
        snapshot.week_seconds,
        snapshot.month_seconds,
        snapshot.sessions_today,
        snapshot.streak_count,
        goal,
    )


def run(controller: LedgerController, stream: TextIO = sys.stdin) -> None:
    for line in stream:
        command = line.strip().lower()
        if command in {"q", "quit", "exit"}:
            break
        controller.record_interaction()
        if command == "export":
            path = controller.export_report()
            LOGGER.info("Report written to %s", path)


def main() -> None:
    configure_logging()
    config_manager = ConfigManager()
    config = config_manager.config
    exporter = UsageReportExporter(Path(config.export_path))
    controller = build_controller(config, exporter=exporter)
    controller.on_tick(_log_snapshot)
    controller.start()
    try:
        run(controller)
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")
    finally:
        controller.stop()


if __name__ == "__main__":
    main()
