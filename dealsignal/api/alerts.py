from fastapi import APIRouter, Depends, Request

from dealsignal.dependencies import get_alerts_service, get_country, require_user_id, resolve_country
from dealsignal.models.deals import AlertCreate
from dealsignal.services.alerts import AlertsService

router = APIRouter(tags=["alerts"])


@router.post("/alerts")
async def create_alert(
    body: AlertCreate,
    request: Request,
    user_id: str = Depends(require_user_id),
    alerts: AlertsService = Depends(get_alerts_service),
):
    country = resolve_country(request, body.country)
    alert = await alerts.create(country, user_id, body.dealId, body.targetPrice)
    return {"ok": True, "alert": alert}


@router.get("/alerts")
async def list_alerts(
    country: str = Depends(get_country),
    user_id: str = Depends(require_user_id),
    alerts: AlertsService = Depends(get_alerts_service),
):
    return {"ok": True, "alerts": await alerts.list_for_user(country, user_id)}


@router.delete("/alerts/{alert_id}")
async def delete_alert(
    alert_id: str,
    country: str = Depends(get_country),
    user_id: str = Depends(require_user_id),
    alerts: AlertsService = Depends(get_alerts_service),
):
    await alerts.delete(country, user_id, alert_id)
    return {"ok": True}
