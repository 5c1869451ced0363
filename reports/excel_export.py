"""Excel export of usage snapshots."""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable

import pandas as pd

from ledger_app.ledger.models import Snapshot

LOGGER = logging.getLogger(__name__)

DAILY_COLUMNS = ["Day", "ActiveSeconds", "ActiveTime", "Sessions", "Streak"]
TOTALS_COLUMNS = ["Day", "WeekSeconds", "MonthSeconds", "Streak", "GoalStatus", "GoalLabel"]


class UsageReportExporter:
    def __init__(self, export_path: Path):
        self.export_path = Path(export_path)
        self.export_path.parent.mkdir(parents=True, exist_ok=True)

    def export(self, snapshots: Iterable[Snapshot]) -> Path:
        """Write snapshots to Excel, keeping one row per day (latest wins)."""
        snapshots = [snap for snap in snapshots if snap.day_key]
        daily_df = pd.DataFrame(
            [
                (snap.day_key, snap.today_seconds, snap.today_display, snap.sessions_today, snap.streak_count)
                for snap in snapshots
            ],
            columns=DAILY_COLUMNS,
        )

        existing_daily = None
        if self.export_path.exists():
            try:
                existing_daily = pd.read_excel(self.export_path, sheet_name="Daily", dtype={"Day": str})
            except Exception:
                LOGGER.warning("Existing Excel file unreadable, recreating: %s", self.export_path)

        if existing_daily is not None:
            combined = pd.concat([existing_daily, daily_df], ignore_index=True)
            combined.drop_duplicates(subset=["Day"], keep="last", inplace=True)
            daily_df = combined.sort_values("Day").reset_index(drop=True)

        totals_df = pd.DataFrame(
            [
                (
                    snap.day_key,
                    snap.week_seconds,
                    snap.month_seconds,
                    snap.streak_count,
                    snap.goal.status,
                    snap.goal.label,
                )
                for snap in snapshots[-1:]
            ],
            columns=TOTALS_COLUMNS,
        )

        with pd.ExcelWriter(self.export_path, engine="openpyxl", mode="w") as writer:
            daily_df.to_excel(writer, sheet_name="Daily", index=False)
            totals_df.to_excel(writer, sheet_name="Totals", index=False)
            meta_df = pd.DataFrame([[datetime.now(), len(daily_df)]], columns=["ExportedAt", "RowCount"])
            meta_df.to_excel(writer, sheet_name="Meta", index=False)
        LOGGER.info("Exported usage report to %s", self.export_path)
        return self.export_path
