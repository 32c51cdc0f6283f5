"""Persistent history of computed team metrics.

Entries are kept in a single local JSON file:

    {"metrics": [...], "nextId": 1}
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone

from .issues import parse_date

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)),
    "data",
    "metrics.json"
)


def _now():
    return datetime.now(timezone.utc)


def _calculated_at(entry: dict) -> datetime:
    return parse_date(entry.get("calculated_at")) or datetime.min.replace(tzinfo=timezone.utc)


class MetricsHistory:
    """JSON-file store of metrics snapshots, keyed by board."""

    def __init__(self, path: str = DEFAULT_HISTORY_PATH, max_entries_per_board: int = 100,
                 retention_days: int = 90, clock=_now):
        self.path = path
        self.max_entries_per_board = max_entries_per_board
        self.retention_days = retention_days
        self._clock = clock
        self.data = self._load()

    def _load(self) -> dict:
        """Load the store, starting fresh if the file is missing or unreadable."""
        if not os.path.exists(self.path):
            return {"metrics": [], "nextId": 1}
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load metrics history from {self.path}, starting fresh: {e}")
            return {"metrics": [], "nextId": 1}

        data.setdefault("metrics", [])
        data.setdefault("nextId", max((m.get("id", 0) for m in data["metrics"]), default=0) + 1)
        return data

    def _save(self):
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        with open(self.path, "w") as f:
            json.dump(self.data, f, indent=2)

    def _board_entries(self, board_id) -> list:
        entries = [m for m in self.data["metrics"] if m.get("board_id") == board_id]
        entries.sort(key=_calculated_at, reverse=True)
        return entries

    def save_metrics(self, board_id, board_name: str, sprint_count: int,
                     metrics_data: dict, maturity_level: int) -> int:
        """Append a snapshot and return its ID.

        Only the newest ``max_entries_per_board`` snapshots of a board are kept.
        """
        entry = {
            "id": self.data["nextId"],
            "board_id": board_id,
            "board_name": board_name,
            "calculated_at": self._clock().isoformat(),
            "sprint_count": sprint_count,
            "metrics_data": metrics_data,
            "maturity_level": maturity_level
        }
        self.data["nextId"] += 1
        self.data["metrics"].append(entry)

        board_entries = [m for m in self.data["metrics"] if m.get("board_id") == board_id]
        if len(board_entries) > self.max_entries_per_board:
            dropped = {m["id"] for m in board_entries[:len(board_entries) - self.max_entries_per_board]}
            self.data["metrics"] = [m for m in self.data["metrics"] if m["id"] not in dropped]

        self._save()
        logger.info(f"Metrics saved for board {board_name} (ID: {board_id}) as entry {entry['id']}")
        return entry["id"]

    def get_latest_metrics(self, board_id):
        entries = self._board_entries(board_id)
        return entries[0] if entries else None

    def get_metrics_history(self, board_id, limit: int = 30) -> list:
        """Newest-first snapshots for a board, without their metrics payloads."""
        return [
            {k: v for k, v in entry.items() if k != "metrics_data"}
            for entry in self._board_entries(board_id)[:limit]
        ]

    def get_metrics_by_id(self, entry_id: int):
        for entry in self.data["metrics"]:
            if entry.get("id") == entry_id:
                return entry
        return None

    def get_all_boards_with_metrics(self) -> list:
        """One row per board with its most recent calculation time, newest first."""
        latest = {}
        for entry in self.data["metrics"]:
            existing = latest.get(entry.get("board_id"))
            if existing is None or _calculated_at(entry) > _calculated_at(existing):
                latest[entry.get("board_id")] = entry

        return [
            {
                "board_id": entry.get("board_id"),
                "board_name": entry.get("board_name"),
                "last_calculated": entry.get("calculated_at")
            }
            for entry in sorted(latest.values(), key=_calculated_at, reverse=True)
        ]

    def clean_old_metrics(self) -> int:
        """Drop snapshots older than the retention window; returns how many were removed."""
        cutoff = self._clock() - timedelta(days=self.retention_days)
        before = len(self.data["metrics"])
        self.data["metrics"] = [m for m in self.data["metrics"] if _calculated_at(m) >= cutoff]
        removed = before - len(self.data["metrics"])

        if removed > 0:
            self._save()
            logger.info(f"Cleaned {removed} old metrics entries")
        return removed
