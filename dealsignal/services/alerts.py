import logging
import math
import uuid
from typing import Any, Dict, List, Optional

from dealsignal.core.clock import utc_now_iso
from dealsignal.core.errors import DealNotFoundError, DealValidationError
from dealsignal.repositories.deals import DealStore

logger = logging.getLogger(__name__)


class AlertsService:
    """User price watches, stored next to the deals of the same country."""

    def __init__(self, store: DealStore):
        self.store = store

    async def create(self, country: str, user_id: str, deal_id: Optional[str], target_price: Optional[float]) -> Dict[str, Any]:
        deal_id = str(deal_id or "").strip()
        if not deal_id or target_price is None or not math.isfinite(target_price):
            raise DealValidationError("dealId and targetPrice are required")

        async with self.store.transaction(country) as store:
            if not any(d.get("id") == deal_id for d in store["deals"]):
                raise DealNotFoundError()

            for alert in store["alerts"]:
                if (
                    isinstance(alert, dict)
                    and alert.get("userId") == user_id
                    and alert.get("dealId") == deal_id
                    and alert.get("active")
                ):
                    raise DealValidationError("Alert already exists for this deal")

            alert = {
                "id": str(uuid.uuid4()),
                "userId": user_id,
                "dealId": deal_id,
                "targetPrice": target_price,
                "createdAt": utc_now_iso(),
                "triggeredAt": None,
                "active": True,
            }
            store["alerts"].append(alert)

        logger.info(f"Alert {alert['id']} created for deal {deal_id} at {target_price}")
        return alert

    async def list_for_user(self, country: str, user_id: str) -> List[Dict[str, Any]]:
        store = await self.store.read(country)
        return [a for a in store["alerts"] if isinstance(a, dict) and a.get("userId") == user_id]

    async def delete(self, country: str, user_id: str, alert_id: str) -> None:
        async with self.store.transaction(country) as store:
            remaining = [
                a for a in store["alerts"]
                if not (isinstance(a, dict) and a.get("id") == alert_id and a.get("userId") == user_id)
            ]
            if len(remaining) == len(store["alerts"]):
                raise DealNotFoundError("Alert not found")
            store["alerts"] = remaining
