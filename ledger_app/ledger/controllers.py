"""Controllers wiring configuration, storage, the tick scheduler and exports."""
from __future__ import annotations

import logging
import math
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from . import __version__
from .activity import ActivityMonitor
from .buckets import BucketLedger
from .goals import GoalCountdown
from .models import Snapshot
from .sessions import SessionCounter
from .storage import KeyValueStore, SqliteStore
from .streaks import StreakTracker
from .timers import TickScheduler

if TYPE_CHECKING:
    from reports.excel_export import UsageReportExporter

LOGGER = logging.getLogger(__name__)


CONFIG_DIR = Path.home() / ".usage_ledger"
CONFIG_FILE = CONFIG_DIR / "config.toml"
DEFAULT_DB_PATH = CONFIG_DIR / "ledger.db"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default_config.toml"


def _positive(data: dict, key: str, default: float) -> float:
    raw = data.get(key, default)
    if isinstance(raw, bool):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value <= 0:
        return default
    return value


@dataclass
class AppConfig:
    tick_seconds: float = 5.0
    idle_cutoff_seconds: float = 60.0
    session_gap_seconds: float = 1800.0
    streak_threshold_seconds: int = 120
    goal_warning_hours: float = 48.0
    db_path: str = ""
    export_path: str = "usage_report.xlsx"

    @classmethod
    def from_toml(cls, data: dict) -> "AppConfig":
        db_path = data.get("db_path", "")
        export_path = data.get("export_path", "usage_report.xlsx")
        return cls(
            tick_seconds=_positive(data, "tick_seconds", 5.0),
            idle_cutoff_seconds=_positive(data, "idle_cutoff_seconds", 60.0),
            session_gap_seconds=_positive(data, "session_gap_seconds", 1800.0),
            streak_threshold_seconds=int(_positive(data, "streak_threshold_seconds", 120)),
            goal_warning_hours=_positive(data, "goal_warning_hours", 48.0),
            db_path=db_path if isinstance(db_path, str) else "",
            export_path=export_path if isinstance(export_path, str) and export_path else "usage_report.xlsx",
        )

    def to_toml(self) -> str:
        lines = [
            f"tick_seconds = {self.tick_seconds:g}",
            f"idle_cutoff_seconds = {self.idle_cutoff_seconds:g}",
            f"session_gap_seconds = {self.session_gap_seconds:g}",
            f"streak_threshold_seconds = {self.streak_threshold_seconds}",
            f"goal_warning_hours = {self.goal_warning_hours:g}",
            f"db_path = \"{self.db_path}\"",
            f"export_path = \"{self.export_path}\"",
        ]
        return "\n".join(lines) + "\n"

    @property
    def resolved_db_path(self) -> Path:
        return Path(self.db_path).expanduser() if self.db_path else DEFAULT_DB_PATH


class ConfigManager:
    def __init__(self, config_file: Path = CONFIG_FILE) -> None:
        self.config_file = Path(config_file)
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config = self._load()

    def _load(self) -> AppConfig:
        if self.config_file.exists():
            try:
                with open(self.config_file, "rb") as fh:
                    return AppConfig.from_toml(tomllib.load(fh))
            except tomllib.TOMLDecodeError:
                LOGGER.warning("Config file %s is not valid TOML; using defaults", self.config_file)
                return AppConfig()
        if DEFAULT_CONFIG_PATH.exists():
            with open(DEFAULT_CONFIG_PATH, "rb") as fh:
                config = AppConfig.from_toml(tomllib.load(fh))
        else:
            config = AppConfig()
        self.save(config)
        return config

    def save(self, config: Optional[AppConfig] = None) -> None:
        cfg = config or self.config
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.write_text(cfg.to_toml(), encoding="utf-8")
        LOGGER.info("Saved configuration to %s", self.config_file)


class LedgerController:
    """Facade the host page talks to: input hooks in, snapshots out."""

    def __init__(
        self,
        store: KeyValueStore,
        config: AppConfig,
        exporter: Optional["UsageReportExporter"] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        kwargs: dict[str, Any] = {"clock": clock} if clock is not None else {}
        self.store = store
        self.config = config
        self.exporter = exporter
        self.monitor = ActivityMonitor(idle_cutoff=config.idle_cutoff_seconds, **kwargs)
        self.goals = GoalCountdown(store, warning_hours=config.goal_warning_hours, **kwargs)
        self.scheduler = TickScheduler(
            self.monitor,
            BucketLedger(store, **kwargs),
            SessionCounter(store, gap_seconds=config.session_gap_seconds, **kwargs),
            StreakTracker(store, threshold_seconds=config.streak_threshold_seconds, **kwargs),
            self.goals,
            period=config.tick_seconds,
            **kwargs,
        )

    # Lifecycle
    def start(self) -> None:
        LOGGER.info("Usage ledger v%s tracking started", __version__)
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()
        LOGGER.info("Usage ledger tracking stopped")

    # Host hooks
    def record_interaction(self, now: Optional[float] = None) -> None:
        self.monitor.record_interaction(now)

    def set_visible(self, visible: bool) -> None:
        self.monitor.set_visible(visible)

    def set_focused(self, focused: bool) -> None:
        self.monitor.set_focused(focused)

    # UI surface
    def get_snapshot(self, now: Optional[float] = None) -> Snapshot:
        return self.scheduler.snapshot(now)

    def on_tick(self, callback: Callable[[Snapshot], None]) -> None:
        self.scheduler.on_tick(callback)

    def tick(self, now: Optional[float] = None) -> Snapshot:
        return self.scheduler.tick_now(now)

    # Goal countdown
    def set_goal(self, text: str, due_at: Optional[float] = None) -> bool:
        self.goals.goal_text = text or ""
        if due_at is None:
            return self.goals.clear_deadline()
        return self.goals.set_deadline(due_at)

    def clear_goal(self) -> bool:
        self.goals.goal_text = ""
        return self.goals.clear_deadline()

    # Excel export
    def export_report(self) -> Path:
        if self.exporter is None:
            raise RuntimeError("No report exporter configured")
        return self.exporter.export([self.get_snapshot()])


def build_controller(config: AppConfig, exporter: Optional["UsageReportExporter"] = None) -> LedgerController:
    store = SqliteStore(config.resolved_db_path)
    return LedgerController(store, config, exporter=exporter)
