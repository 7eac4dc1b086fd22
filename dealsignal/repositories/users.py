import asyncio
import logging
import math
from pathlib import Path
from typing import Any, Dict, Union

from dealsignal.core.clock import utc_now_iso
from dealsignal.repositories.json_files import backup_file, ensure_file, read_json, write_json_atomic

logger = logging.getLogger(__name__)


def _empty_ledger() -> Dict[str, Any]:
    return {"updatedAt": utc_now_iso(), "users": {}}


class UsersRepository:
    """Points ledger keyed by user id (the submitter's email)."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> Dict[str, Any]:
        try:
            ensure_file(self.path, _empty_ledger)
            parsed = read_json(self.path)
        except (OSError, ValueError) as e:
            logger.warning(f"Users ledger read failed, starting empty: {e}")
            return _empty_ledger()
        if not isinstance(parsed, dict):
            parsed = {}
        users = parsed.get("users")
        return {
            "updatedAt": parsed.get("updatedAt") or utc_now_iso(),
            "users": users if isinstance(users, dict) else {},
        }

    def _add_points_sync(self, user_id: str, delta: float) -> Dict[str, Any]:
        ledger = self._load()
        now = utc_now_iso()
        existing = ledger["users"].get(user_id) or {"points": 0, "createdAt": now}
        try:
            current = float(existing.get("points") or 0)
        except (TypeError, ValueError):
            current = 0
        points = max(0, math.floor(current + delta))

        ledger["users"][user_id] = {
            "points": points,
            "createdAt": existing.get("createdAt") or now,
            "updatedAt": now,
        }
        ledger["updatedAt"] = now
        ensure_file(self.path, _empty_ledger)
        backup_file(self.path)
        write_json_atomic(self.path, ledger)
        return {"userId": user_id, "points": points, "added": delta}

    async def add_points(self, user_id: str, delta: float) -> Dict[str, Any]:
        """Adds delta (floored, never below zero). Raises ValueError on bad input, OSError on write failure."""
        user_id = str(user_id or "").strip()
        if not user_id:
            raise ValueError("user_id is required")
        if not isinstance(delta, (int, float)) or not math.isfinite(delta):
            raise ValueError("points must be a number")
        async with self._lock:
            result = await asyncio.to_thread(self._add_points_sync, user_id, delta)
        logger.info(f"Awarded {delta} points to {user_id} (total {result['points']})")
        return result

    async def get_points(self, user_id: str) -> int:
        user_id = str(user_id or "").strip()
        async with self._lock:
            ledger = await asyncio.to_thread(self._load)
        row = ledger["users"].get(user_id) or {}
        try:
            return int(row.get("points") or 0)
        except (TypeError, ValueError):
            return 0
