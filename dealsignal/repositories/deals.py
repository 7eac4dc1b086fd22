import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Union
from pydantic import BaseModel

from dealsignal.core.clock import utc_now_iso
from dealsignal.core.errors import StoreGuardError, StoreResetDisabledError, StoreWriteError
from dealsignal.models.deals import COUNTRIES, DealStatus, empty_store, normalize_country
from dealsignal.repositories.json_files import backup_file, ensure_file, read_json, write_json_atomic
from dealsignal.services.deal_keys import get_deal_key

logger = logging.getLogger(__name__)

# Fields an upsert never takes from the incoming record.
PRESERVED_ON_MERGE = ("id", "createdAt", "clicks", "views")


class WriteStatus(str, Enum):
    WRITTEN = "written"
    GUARDED = "guarded"


class WriteResult(BaseModel):
    status: WriteStatus
    total: int

    @property
    def written(self) -> bool:
        return self.status == WriteStatus.WRITTEN


def coerce_store(parsed: Any) -> Dict[str, Any]:
    """Shapes any parsed document (or legacy bare array) into a full store."""
    if isinstance(parsed, list):
        parsed = {"deals": parsed}
    if not isinstance(parsed, dict):
        parsed = {}
    deals = parsed.get("deals")
    return {
        "updatedAt": parsed.get("updatedAt") or utc_now_iso(),
        "deals": [d for d in deals if isinstance(d, dict)] if isinstance(deals, list) else [],
        "reports": parsed.get("reports") if isinstance(parsed.get("reports"), list) else [],
        "alerts": parsed.get("alerts") if isinstance(parsed.get("alerts"), list) else [],
    }


def _merge_targets(deals: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Maps each dedup key to the index of the record an upsert merges into.
    A live record wins over a disabled one; otherwise the first in list order.
    """
    targets: Dict[str, int] = {}
    for index, deal in enumerate(deals):
        key = get_deal_key(deal)
        current = targets.get(key)
        if current is None:
            targets[key] = index
        elif deals[current].get("status") == DealStatus.DISABLED.value and deal.get("status") != DealStatus.DISABLED.value:
            targets[key] = index
    return targets


def merge_deals(existing: List[Dict[str, Any]], incoming: Iterable[Any], country: str) -> Dict[str, Any]:
    """
    Merges incoming records into existing ones by dedup key.

    A matching record is shallow-merged in place: incoming fields win except
    the preserved ones, and an existing status is kept (approved when neither
    side has one). New records are appended with a fresh id and timestamps.
    Existing records are never dropped, even when several share a key.
    Returns {"deals", "addedCount", "updatedCount"}.
    """
    deals = list(existing)
    targets = _merge_targets(deals)

    added = 0
    updated = 0
    for raw in incoming:
        if not isinstance(raw, dict) or not raw:
            continue
        key = get_deal_key(raw)
        now = utc_now_iso()

        index = targets.get(key)
        if index is not None:
            current = deals[index]
            merged = {**current, **raw}
            for field in PRESERVED_ON_MERGE:
                if field in current:
                    merged[field] = current[field]
            merged["status"] = current.get("status") or raw.get("status") or DealStatus.APPROVED.value
            merged["country"] = country
            merged["updatedAt"] = now
            deals[index] = merged
            updated += 1
        else:
            record = {
                "status": DealStatus.APPROVED.value,
                "expiresAt": None,
                "clicks": 0,
                "views": 0,
                **raw,
            }
            record["id"] = str(uuid.uuid4())
            record["status"] = raw.get("status") or DealStatus.APPROVED.value
            record["country"] = country
            record["createdAt"] = now
            record["updatedAt"] = now
            targets[key] = len(deals)
            deals.append(record)
            added += 1

    return {"deals": deals, "addedCount": added, "updatedCount": updated}


class DealStore:
    """
    Per-country JSON document store for deals, reports and alerts.

    Each country lives in its own file (<stem>-CA.json, <stem>-US.json) and has
    its own asyncio.Lock; every read-modify-write goes through transaction().
    Reads never raise; writes raise StoreWriteError on I/O failure.
    """

    def __init__(
        self,
        data_dir: Union[str, Path],
        file_name: str = "deals.json",
        legacy_files: Optional[List[str]] = None,
        allow_reset: bool = False,
    ):
        self.data_dir = Path(data_dir)
        self.file_name = file_name
        self.stem = Path(file_name).stem
        self.legacy_files = [Path(p) for p in (legacy_files or [])]
        self.allow_reset = allow_reset
        self._locks = {country: asyncio.Lock() for country in COUNTRIES}

    def path_for(self, country: str) -> Path:
        return self.data_dir / f"{self.stem}-{normalize_country(country)}.json"

    @property
    def migration_marker(self) -> Path:
        return self.data_dir / f"{self.stem}.migrated"

    # --- Lifecycle ---

    async def startup(self):
        """Bootstraps every country file and runs the one-time legacy migration."""
        await asyncio.to_thread(self._startup_sync)

    def _startup_sync(self):
        for country in COUNTRIES:
            try:
                ensure_file(self.path_for(country), empty_store)
            except OSError as e:
                logger.error(f"Could not bootstrap store for {country}: {e}")
        try:
            self._migrate_legacy()
        except OSError as e:
            logger.error(f"Legacy migration failed: {e}")

    def _migrate_legacy(self) -> int:
        """
        Copies a legacy single-file store into the CA partition.
        Runs at most once (marker file) and never overwrites a non-empty CA file.
        """
        if self.migration_marker.exists():
            return 0

        target = self.path_for("CA")
        if self._count_on_disk(target) > 0:
            logger.info("CA store already populated, skipping legacy migration.")
            self.migration_marker.write_text(utc_now_iso(), encoding="utf-8")
            return 0

        candidates = [self.data_dir / self.file_name] + self.legacy_files
        migrated = 0
        for legacy in candidates:
            if not legacy.exists() or legacy.resolve() == target.resolve():
                continue
            try:
                doc = coerce_store(read_json(legacy))
            except ValueError as e:
                logger.error(f"Legacy store {legacy} is unreadable: {e}")
                continue
            if not doc["deals"]:
                continue
            for deal in doc["deals"]:
                deal.setdefault("country", "CA")
            logger.info(f"Detected legacy store {legacy}. Migrating {len(doc['deals'])} deals to CA...")
            backup_file(target)
            doc["updatedAt"] = utc_now_iso()
            write_json_atomic(target, doc)
            migrated = len(doc["deals"])
            break

        self.migration_marker.write_text(utc_now_iso(), encoding="utf-8")
        return migrated

    # --- Sync primitives (run in worker threads) ---

    def _count_on_disk(self, path: Path) -> int:
        try:
            return len(coerce_store(read_json(path))["deals"])
        except (OSError, ValueError):
            return 0

    def _load(self, country: str) -> Dict[str, Any]:
        path = self.path_for(country)
        try:
            ensure_file(path, empty_store)
            return coerce_store(read_json(path))
        except (OSError, ValueError) as e:
            logger.error(f"Reading {path} failed, serving an empty store: {e}")
            return empty_store()

    def _dump(self, country: str, data: Union[Dict[str, Any], List[Dict[str, Any]]], allow_empty: bool) -> WriteResult:
        path = self.path_for(country)
        try:
            ensure_file(path, empty_store)
            if isinstance(data, list):
                doc = self._load(country)
                doc["deals"] = data
            else:
                doc = coerce_store(data)

            on_disk = self._count_on_disk(path)
            if on_disk > 0 and not doc["deals"] and not allow_empty:
                logger.warning(
                    f"Refusing to overwrite {path}: {on_disk} stored deals, 0 incoming."
                )
                return WriteResult(status=WriteStatus.GUARDED, total=on_disk)

            backup_file(path)
            doc["updatedAt"] = utc_now_iso()
            write_json_atomic(path, doc)
            return WriteResult(status=WriteStatus.WRITTEN, total=len(doc["deals"]))
        except OSError as e:
            logger.error(f"Writing {path} failed: {e}")
            raise StoreWriteError(f"Failed to persist deals for {country}") from e

    # --- Public API ---

    async def read(self, country: str) -> Dict[str, Any]:
        country = normalize_country(country)
        async with self._locks[country]:
            return await asyncio.to_thread(self._load, country)

    async def write(
        self,
        country: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]],
        allow_empty: bool = False,
    ) -> WriteResult:
        """Replaces the country file. Emptying a non-empty store is GUARDED unless allow_empty."""
        country = normalize_country(country)
        async with self._locks[country]:
            return await asyncio.to_thread(self._dump, country, data, allow_empty)

    @asynccontextmanager
    async def transaction(self, country: str, allow_empty: bool = False) -> AsyncIterator[Dict[str, Any]]:
        """
        Holds the country lock across read, caller mutation and write.
        Nothing is written when the block raises.
        """
        country = normalize_country(country)
        async with self._locks[country]:
            doc = await asyncio.to_thread(self._load, country)
            yield doc
            result = await asyncio.to_thread(self._dump, country, doc, allow_empty)
            if not result.written:
                raise StoreGuardError("Refusing to replace stored deals with an empty list")

    async def upsert(self, country: str, incoming: List[Dict[str, Any]]) -> Dict[str, int]:
        if not isinstance(incoming, list):
            raise TypeError("upsert expects a list of deals")
        country = normalize_country(country)
        async with self.transaction(country) as doc:
            merged = merge_deals(doc["deals"], incoming, country)
            doc["deals"] = merged["deals"]

        logger.info(
            f"Upserted {country}: {merged['addedCount']} added, {merged['updatedCount']} updated."
        )
        return {
            "addedCount": merged["addedCount"],
            "updatedCount": merged["updatedCount"],
            "total": len(merged["deals"]),
        }

    async def reset(self, country: str) -> WriteResult:
        if not self.allow_reset:
            raise StoreResetDisabledError("Store reset is disabled")
        country = normalize_country(country)
        logger.warning(f"Resetting deal store for {country}")
        return await self.write(country, empty_store(), allow_empty=True)
