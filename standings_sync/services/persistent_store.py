from __future__ import annotations

import json
import os
import threading
from typing import Any

from loguru import logger


class PersistentStore:
    """Cache snapshot and API budget persistence in JSON files.

    Either path may be empty; that half then lives in memory only.
    """

    def __init__(self, snapshot_path: str = "", budget_path: str = "") -> None:
        self.snapshot_path = os.path.normpath(snapshot_path) if snapshot_path else ""
        self.budget_path = os.path.normpath(budget_path) if budget_path else ""
        self._memory_budget: dict[str, Any] = {}
        self._write_lock = threading.Lock()

    @property
    def persists_snapshots(self) -> bool:
        return bool(self.snapshot_path)

    @staticmethod
    def _read_json_file(path: str) -> dict[str, Any] | None:
        if not path or not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"Failed to read {path}: {exc}")
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def _write_json_file(path: str, payload: dict[str, Any]) -> None:
        if not path:
            return
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)

    def load_snapshot(self) -> dict[str, Any]:
        return self._read_json_file(self.snapshot_path) or {}

    def save_snapshot(self, payload: dict[str, Any]) -> None:
        if not self.snapshot_path:
            return
        try:
            with self._write_lock:
                self._write_json_file(self.snapshot_path, payload)
        except OSError as exc:
            logger.warning(f"Failed to persist cache snapshot: {exc}")

    def _load_budget_payload(self) -> dict[str, Any]:
        if self.budget_path:
            return self._read_json_file(self.budget_path) or {}
        return dict(self._memory_budget)

    def _save_budget_payload(self, payload: dict[str, Any]) -> None:
        if self.budget_path:
            try:
                with self._write_lock:
                    self._write_json_file(self.budget_path, payload)
            except OSError as exc:
                logger.warning(f"Failed to persist API budget: {exc}")
            return
        self._memory_budget = dict(payload)

    def get_budget_count_for_date(self, date_text: str) -> int:
        payload = self._load_budget_payload()
        if str(payload.get("date", "")).strip() != date_text:
            return 0
        return int(payload.get("count", 0) or 0)

    def consume_budget(self, date_text: str, max_daily_api_calls: int) -> tuple[bool, int]:
        payload = self._load_budget_payload()
        if str(payload.get("date", "")).strip() != date_text:
            payload = {
                "date": date_text,
                "count": 0,
                "max_daily_api_calls": int(max_daily_api_calls),
            }

        count = max(0, int(payload.get("count", 0) or 0))
        if count >= int(max_daily_api_calls):
            payload["count"] = int(max_daily_api_calls)
            payload["max_daily_api_calls"] = int(max_daily_api_calls)
            self._save_budget_payload(payload)
            return False, int(max_daily_api_calls)

        count += 1
        payload["count"] = count
        payload["max_daily_api_calls"] = int(max_daily_api_calls)
        self._save_budget_payload(payload)
        return True, count

    def lock_budget(self, date_text: str, max_daily_api_calls: int) -> int:
        payload = {
            "date": date_text,
            "count": int(max_daily_api_calls),
            "max_daily_api_calls": int(max_daily_api_calls),
        }
        self._save_budget_payload(payload)
        return int(max_daily_api_calls)
