from urllib.parse import quote
from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from dealsignal.core.errors import DealValidationError
from dealsignal.dependencies import get_affiliate_service, get_country
from dealsignal.services.affiliate import AffiliateService

router = APIRouter(tags=["redirect"])


@router.get("/go/{source}/{item_id}")
async def go_to_item(
    source: str,
    item_id: str,
    country: str = Depends(get_country),
    affiliate: AffiliateService = Depends(get_affiliate_service),
):
    url = await affiliate.resolve(source, item_id, country)
    return RedirectResponse(url, status_code=302)


@router.get("/go/{deal_id}")
async def go_to_deal(
    deal_id: str,
    country: str = Depends(get_country),
    affiliate: AffiliateService = Depends(get_affiliate_service),
):
    source, item_id = await affiliate.source_for_deal(country, deal_id)
    return RedirectResponse(f"/go/{quote(source)}/{quote(item_id)}?country={country}", status_code=302)


@router.get("/redirect")
async def legacy_redirect(item_id: str = Query(default="", alias="id"), country: str = Depends(get_country)):
    if not item_id:
        raise DealValidationError("Missing id")
    return RedirectResponse(f"/go/amazon/{quote(item_id)}?country={country}", status_code=302)
