import logging
import math
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dealsignal.core.clock import parse_timestamp, utc_now, utc_now_iso
from dealsignal.core.config import Settings
from dealsignal.core.errors import (
    DealNotActiveError,
    DealNotFoundError,
    DealValidationError,
    DuplicateDealError,
    InvalidTransitionError,
)
from dealsignal.models.deals import DealStatus, ReportStatus, normalize_country, normalize_status
from dealsignal.repositories.deals import DealStore
from dealsignal.repositories.users import UsersRepository
from dealsignal.services.deal_keys import get_deal_key
from dealsignal.services.url_policy import extract_asin, normalize_product_url, validate_deal_link

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Other"
DEFAULT_RETAILER = "Other"

# Never taken from an admin patch.
IMMUTABLE_FIELDS = {"id", "createdAt", "country"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def compute_discount(price: Any, original_price: Any) -> int:
    """Whole-percent discount, 0 when it cannot be computed."""
    if not _is_number(price) or not _is_number(original_price):
        return 0
    if price <= 0 or original_price <= 0 or price >= original_price:
        return 0
    return round((original_price - price) / original_price * 100)


def _has_value(value: Any) -> bool:
    return value is not None and value != ""


def is_publicly_visible(deal: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """Approved and not expired. Unknown statuses and unreadable expiry dates are never visible."""
    if deal.get("status") != DealStatus.APPROVED.value:
        return False
    raw_expiry = deal.get("expiresAt")
    if not _has_value(raw_expiry):
        return True
    expires_at = parse_timestamp(raw_expiry)
    return expires_at is not None and expires_at > (now or utc_now())


def _check_expiry(value: Any) -> Optional[str]:
    """Empty clears the expiry; anything else must be an ISO-8601 timestamp."""
    if not _has_value(value):
        return None
    if parse_timestamp(value) is None:
        raise DealValidationError("expiresAt must be an ISO-8601 timestamp")
    return value


def _find(deals: List[Dict[str, Any]], deal_id: str) -> Dict[str, Any]:
    for deal in deals:
        if deal.get("id") == deal_id:
            return deal
    raise DealNotFoundError()


class DealsService:
    """Deal lifecycle: submission, moderation, counters and reports."""

    def __init__(self, store: DealStore, users_repo: UsersRepository, settings: Settings):
        self.store = store
        self.users_repo = users_repo
        self.settings = settings

    # --- Record shaping ---

    def _apply_link(self, record: Dict[str, Any], url: Any, retailer: Optional[str]) -> None:
        check = validate_deal_link(url, retailer)
        if not check["ok"]:
            raise DealValidationError(check["reason"])
        normalized = normalize_product_url(check["normalized_url"]) or check["normalized_url"]
        record["url"] = normalized
        record["urlHost"] = check["host"]
        asin = extract_asin(normalized)
        if asin:
            record["asin"] = asin

    def normalize_incoming(self, raw: Dict[str, Any], country: str) -> Dict[str, Any]:
        """
        Validates an incoming record and fills the derived fields.
        Unknown fields are carried through untouched.
        """
        if not isinstance(raw, dict):
            raise DealValidationError("Deal must be an object")

        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            raise DealValidationError("title and price are required")
        price = raw.get("price")
        if not _is_number(price):
            raise DealValidationError("title and price are required")
        if price <= 0:
            raise DealValidationError("price must be greater than 0")

        original_price = raw.get("originalPrice")
        if not _is_number(original_price) or original_price <= 0:
            original_price = None

        retailer = str(raw.get("retailer") or DEFAULT_RETAILER).strip()
        record = dict(raw)
        record.update({
            "title": title.strip(),
            "price": price,
            "originalPrice": original_price,
            "discountPercent": compute_discount(price, original_price),
            "retailer": retailer,
            "category": str(raw.get("category") or DEFAULT_CATEGORY).strip(),
            "country": country,
        })
        if "expiresAt" in raw:
            record["expiresAt"] = _check_expiry(raw["expiresAt"])
        self._apply_link(record, raw.get("url"), retailer)
        return record

    def _new_deal(self, body: Dict[str, Any], country: str, status: DealStatus, user_id: Optional[str]) -> Dict[str, Any]:
        record = self.normalize_incoming(body, country)
        now = utc_now_iso()
        record.update({
            "id": str(uuid.uuid4()),
            "status": status.value,
            "clicks": 0,
            "views": 0,
            "expiresAt": record.get("expiresAt") or None,
            "createdAt": now,
            "updatedAt": now,
            "createdByUserId": user_id,
            "pointsAwarded": False,
            "pointsAwardedAt": None,
        })
        return record

    # --- Public reads ---

    async def list_public(
        self,
        country: str,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        max_price: Optional[float] = None,
        discount: Optional[float] = None,
    ) -> Dict[str, Any]:
        store = await self.store.read(country)
        now = utc_now()
        deals = [d for d in store["deals"] if is_publicly_visible(d, now)]

        if category and category != "All":
            wanted = category.lower()
            deals = [d for d in deals if str(d.get("category") or "").lower() == wanted]

        if max_price is not None:
            deals = [d for d in deals if _is_number(d.get("price")) and d["price"] <= max_price]

        if discount is not None:
            deals = [
                d for d in deals
                if d.get("originalPrice") and compute_discount(d.get("price"), d.get("originalPrice")) >= discount
            ]

        if sort == "newest":
            deals.sort(key=lambda d: parse_timestamp(d.get("createdAt")) or datetime.min.replace(tzinfo=now.tzinfo), reverse=True)
        elif sort == "trending":
            deals.sort(key=lambda d: d.get("clicks") or 0, reverse=True)

        return {"updatedAt": store["updatedAt"], "count": len(deals), "deals": deals}

    async def get_public(self, country: str, deal_id: str) -> Dict[str, Any]:
        store = await self.store.read(country)
        deal = _find(store["deals"], deal_id)
        if not is_publicly_visible(deal):
            raise DealNotFoundError()
        return deal

    # --- Submission ---

    async def submit(self, country: str, body: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        """Public submission. Always lands as pending, whatever the caller sends."""
        country = normalize_country(country)
        body = {k: v for k, v in body.items() if k not in ("status", "sourceKey", "id")}
        deal = self._new_deal(body, country, DealStatus.PENDING, user_id)
        key = get_deal_key(deal)
        window = timedelta(hours=self.settings.DUPLICATE_WINDOW_HOURS)

        async with self.store.transaction(country) as store:
            now = utc_now()
            for existing in store["deals"]:
                if existing.get("status") == DealStatus.DISABLED.value:
                    continue
                if get_deal_key(existing) != key:
                    continue
                created = parse_timestamp(existing.get("createdAt"))
                if created is None or now - created < window:
                    raise DuplicateDealError("This deal was already submitted")
            store["deals"].insert(0, deal)

        logger.info(f"Deal {deal['id']} submitted for review ({country})")
        return deal

    async def create(self, country: str, body: Dict[str, Any]) -> Dict[str, Any]:
        """Admin creation, published immediately."""
        country = normalize_country(country)
        deal = self._new_deal(body, country, DealStatus.APPROVED, None)
        async with self.store.transaction(country) as store:
            store["deals"].insert(0, deal)
        logger.info(f"Deal {deal['id']} created by admin ({country})")
        return deal

    async def bulk_upsert(self, country: str, incoming: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not incoming:
            raise DealValidationError("No deals provided")
        country = normalize_country(country)

        accepted = []
        skipped = []
        for index, raw in enumerate(incoming):
            try:
                accepted.append(self.normalize_incoming(raw, country))
            except DealValidationError as e:
                skipped.append({"index": index, "reason": e.reason})

        result = await self.store.upsert(country, accepted)
        if skipped:
            logger.warning(f"Bulk upsert skipped {len(skipped)} invalid deals ({country})")
        return {**result, "skipped": skipped}

    # --- Admin queues ---

    async def list_admin(self, country: str, status: Optional[str] = None) -> Dict[str, Any]:
        store = await self.store.read(country)
        deals = store["deals"]
        if status:
            deals = [d for d in deals if normalize_status(d.get("status")) == normalize_status(status)]
        return {"updatedAt": store["updatedAt"], "count": len(deals), "deals": deals}

    async def list_pending(self, country: str) -> List[Dict[str, Any]]:
        store = await self.store.read(country)
        return [d for d in store["deals"] if normalize_status(d.get("status")) == DealStatus.PENDING.value]

    # --- Transitions ---

    async def approve(self, country: str, deal_id: str) -> Dict[str, Any]:
        """pending -> approved. Submitter points are awarded once, gated on pointsAwarded."""
        async with self.store.transaction(country) as store:
            deal = _find(store["deals"], deal_id)
            status = normalize_status(deal.get("status"))
            if status not in (DealStatus.PENDING.value, DealStatus.APPROVED.value):
                raise InvalidTransitionError(f"Cannot approve a {status} deal")

            deal["status"] = DealStatus.APPROVED.value
            deal["updatedAt"] = utc_now_iso()

            user_id = deal.get("createdByUserId")
            if user_id and not deal.get("pointsAwarded"):
                points = self.settings.APPROVAL_POINTS
                try:
                    await self.users_repo.add_points(user_id, points)
                except (OSError, ValueError) as e:
                    logger.error(f"Awarding points for deal {deal_id} failed: {e}")
                else:
                    deal["pointsAwarded"] = True
                    deal["pointsAwardedAt"] = utc_now_iso()
                    deal["pointsAwardedAmount"] = points

        logger.info(f"Deal {deal_id} approved ({country})")
        return deal

    async def reject(self, country: str, deal_id: str) -> Dict[str, Any]:
        """pending -> removed from the store."""
        async with self.store.transaction(country, allow_empty=True) as store:
            deal = _find(store["deals"], deal_id)
            status = normalize_status(deal.get("status"))
            if status != DealStatus.PENDING.value:
                raise InvalidTransitionError(f"Cannot reject a {status} deal")
            store["deals"] = [d for d in store["deals"] if d.get("id") != deal_id]

        logger.info(f"Deal {deal_id} rejected and removed ({country})")
        return {"ok": True, "deletedId": deal_id}

    async def disable(self, country: str, deal_id: str) -> Dict[str, Any]:
        """Soft delete: kept for audit, hidden from the public feed."""
        async with self.store.transaction(country) as store:
            deal = _find(store["deals"], deal_id)
            now = utc_now_iso()
            deal["status"] = DealStatus.DISABLED.value
            deal["expiresAt"] = now
            deal["updatedAt"] = now

        logger.info(f"Deal {deal_id} disabled ({country})")
        return deal

    async def update(self, country: str, deal_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Admin patch. A url or retailer change re-runs the link check, expiresAt
        must be an ISO-8601 timestamp, a status must be one of the known
        values, and a price change triggers matching price alerts.
        """
        patch = {k: v for k, v in patch.items() if k not in IMMUTABLE_FIELDS}

        if "status" in patch:
            try:
                patch["status"] = DealStatus(str(patch["status"]).lower()).value
            except ValueError:
                raise DealValidationError(f"Unknown status '{patch['status']}'")
        if "price" in patch and (not _is_number(patch["price"]) or patch["price"] <= 0):
            raise DealValidationError("price must be greater than 0")
        if "expiresAt" in patch:
            patch["expiresAt"] = _check_expiry(patch["expiresAt"])
        if "retailer" in patch:
            patch["retailer"] = str(patch["retailer"] or DEFAULT_RETAILER).strip()

        async with self.store.transaction(country) as store:
            deal = _find(store["deals"], deal_id)
            old_price = deal.get("price")

            updated = {**deal, **patch}
            if "url" in patch or "retailer" in patch:
                self._apply_link(updated, updated.get("url"), updated.get("retailer"))
            if "price" in patch or "originalPrice" in patch:
                updated["discountPercent"] = compute_discount(updated.get("price"), updated.get("originalPrice"))
            now = utc_now_iso()
            updated["updatedAt"] = now

            new_price = updated.get("price")
            if _is_number(old_price) and _is_number(new_price) and new_price != old_price:
                triggered = 0
                for alert in store["alerts"]:
                    if (
                        isinstance(alert, dict)
                        and not alert.get("triggeredAt")
                        and alert.get("dealId") == deal_id
                        and _is_number(alert.get("targetPrice"))
                        and new_price <= alert["targetPrice"]
                    ):
                        alert["triggeredAt"] = now
                        alert["active"] = False
                        triggered += 1
                if triggered:
                    logger.info(f"Price drop on {deal_id} triggered {triggered} alerts")

            deal.clear()
            deal.update(updated)

        return deal

    # --- Counters ---

    async def _increment(self, country: str, deal_id: str, field: str) -> Dict[str, Any]:
        async with self.store.transaction(country) as store:
            deal = _find(store["deals"], deal_id)
            if not is_publicly_visible(deal):
                raise DealNotActiveError()
            deal[field] = int(deal.get(field) or 0) + 1
            deal["updatedAt"] = utc_now_iso()
        return deal

    async def register_click(self, country: str, deal_id: str) -> Dict[str, Any]:
        return await self._increment(country, deal_id, "clicks")

    async def register_view(self, country: str, deal_id: str) -> Dict[str, Any]:
        return await self._increment(country, deal_id, "views")

    # --- Reports ---

    async def report(
        self,
        country: str,
        deal_id: str,
        reason: Optional[str],
        notes: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not reason or not str(reason).strip():
            raise DealValidationError("reason is required")

        async with self.store.transaction(country) as store:
            deal = _find(store["deals"], deal_id)
            now = utc_now_iso()
            report = {
                "id": str(uuid.uuid4()),
                "dealId": deal["id"],
                "reason": str(reason).strip(),
                "notes": str(notes) if notes else None,
                "userId": user_id,
                "status": ReportStatus.PENDING.value,
                "createdAt": now,
                "updatedAt": now,
            }
            store["reports"].append(report)

        logger.info(f"Report {report['id']} filed against deal {deal_id}")
        return report

    async def list_reports(self, country: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
        store = await self.store.read(country)
        reports = [r for r in store["reports"] if isinstance(r, dict)]
        if status:
            reports = [r for r in reports if r.get("status") == status]
        return reports

    async def review_report(self, country: str, report_id: str) -> Dict[str, Any]:
        async with self.store.transaction(country) as store:
            for report in store["reports"]:
                if isinstance(report, dict) and report.get("id") == report_id:
                    report["status"] = ReportStatus.REVIEWED.value
                    report["updatedAt"] = utc_now_iso()
                    return report
            raise DealNotFoundError("Report not found")
