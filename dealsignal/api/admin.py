from typing import Optional
from fastapi import APIRouter, Depends, Request

from dealsignal.dependencies import get_country, get_deal_store, get_deals_service, require_admin, resolve_country
from dealsignal.models.deals import AdminDealCreate, BulkUpsertRequest, CountryBody, DealPatch
from dealsignal.repositories.deals import DealStore
from dealsignal.services.deals import DealsService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/deals")
async def list_all_deals(
    country: str = Depends(get_country),
    status: Optional[str] = None,
    service: DealsService = Depends(get_deals_service),
):
    return await service.list_admin(country, status=status)


@router.get("/deals/pending")
async def list_pending_deals(
    country: str = Depends(get_country),
    service: DealsService = Depends(get_deals_service),
):
    deals = await service.list_pending(country)
    return {"ok": True, "count": len(deals), "deals": deals}


@router.post("/deals", status_code=201)
async def create_deal(
    body: AdminDealCreate,
    request: Request,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country)
    deal = await service.create(country, body.model_dump(exclude={"country"}, exclude_none=True))
    return {"ok": True, "deal": deal}


@router.post("/deals/bulk")
async def bulk_upsert_deals(
    body: BulkUpsertRequest,
    request: Request,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country)
    result = await service.bulk_upsert(country, body.deals)
    return {"ok": True, **result}


@router.post("/deals/reset")
async def reset_deals(
    request: Request,
    body: Optional[CountryBody] = None,
    store: DealStore = Depends(get_deal_store),
):
    country = resolve_country(request, body.country if body else None)
    result = await store.reset(country)
    return {"ok": True, "total": result.total}


@router.put("/deals/{deal_id}")
async def update_deal(
    deal_id: str,
    body: DealPatch,
    request: Request,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country)
    patch = dict(body.model_extra or {})
    deal = await service.update(country, deal_id, patch)
    return {"ok": True, "deal": deal}


@router.post("/deals/{deal_id}/approve")
async def approve_deal(
    deal_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    deal = await service.approve(country, deal_id)
    return {"ok": True, "deal": deal}


@router.post("/deals/{deal_id}/reject")
async def reject_deal(
    deal_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    return await service.reject(country, deal_id)


@router.delete("/deals/{deal_id}")
async def disable_deal(
    deal_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    deal = await service.disable(country, deal_id)
    return {"ok": True, "deal": deal}


@router.get("/reports")
async def list_reports(
    country: str = Depends(get_country),
    status: Optional[str] = None,
    service: DealsService = Depends(get_deals_service),
):
    reports = await service.list_reports(country, status=status)
    return {"ok": True, "count": len(reports), "reports": reports}


@router.post("/reports/{report_id}/review")
async def review_report(
    report_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    report = await service.review_report(country, report_id)
    return {"ok": True, "report": report}
