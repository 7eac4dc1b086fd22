from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from dealsignal.dependencies import (
    client_identity,
    get_country,
    get_deals_service,
    get_rate_limiter,
    get_user_id,
    resolve_country,
)
from dealsignal.models.deals import CountryBody, DealSubmission, ReportCreate
from dealsignal.services.deals import DealsService
from dealsignal.services.submissions import SubmissionRateLimiter

router = APIRouter(tags=["deals"])


@router.get("/deals")
async def list_deals(
    country: str = Depends(get_country),
    category: Optional[str] = None,
    sort: Optional[str] = None,
    max_price: Optional[float] = Query(default=None, alias="maxPrice"),
    discount: Optional[float] = None,
    service: DealsService = Depends(get_deals_service),
):
    return await service.list_public(country, category=category, sort=sort, max_price=max_price, discount=discount)


@router.get("/deals/{deal_id}")
async def get_deal(
    deal_id: str,
    country: str = Depends(get_country),
    service: DealsService = Depends(get_deals_service),
):
    return await service.get_public(country, deal_id)


@router.post("/deals", status_code=201)
async def submit_deal(
    body: DealSubmission,
    request: Request,
    service: DealsService = Depends(get_deals_service),
    limiter: SubmissionRateLimiter = Depends(get_rate_limiter),
):
    limiter.check(client_identity(request))
    country = resolve_country(request, body.country)
    deal = await service.submit(country, body.model_dump(exclude={"country"}), user_id=get_user_id(request))
    return {"ok": True, "pending": True, "deal": deal}


@router.post("/deals/{deal_id}/click")
async def click_deal(
    deal_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    deal = await service.register_click(country, deal_id)
    return {"ok": True, "clicks": deal["clicks"]}


@router.post("/deals/{deal_id}/view")
async def view_deal(
    deal_id: str,
    request: Request,
    body: Optional[CountryBody] = None,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country if body else None)
    deal = await service.register_view(country, deal_id)
    return {"ok": True, "views": deal["views"]}


@router.post("/deals/{deal_id}/report")
async def report_deal(
    deal_id: str,
    body: ReportCreate,
    request: Request,
    service: DealsService = Depends(get_deals_service),
):
    country = resolve_country(request, body.country)
    report = await service.report(country, deal_id, body.reason, notes=body.notes, user_id=get_user_id(request))
    return {"ok": True, "report": report}
