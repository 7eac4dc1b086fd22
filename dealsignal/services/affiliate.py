import logging
import re
from typing import Tuple
from urllib.parse import urlencode

from dealsignal.core.clock import utc_now_iso
from dealsignal.core.config import Settings
from dealsignal.core.errors import AffiliateConfigError, DealNotFoundError, DealValidationError
from dealsignal.models.deals import normalize_country
from dealsignal.repositories.deals import DealStore

logger = logging.getLogger(__name__)

AMAZON_ASIN_RE = re.compile(r"^B0[A-Z0-9]{8}$")
EBAY_ITEM_RE = re.compile(r"^[0-9]{9,15}$")

AMAZON_DOMAINS = {"CA": "www.amazon.ca", "US": "www.amazon.com"}
EBAY_DOMAINS = {"CA": "www.ebay.ca", "US": "www.ebay.com"}
# eBay Partner Network rotation ids per marketplace
EBAY_ROTATION_IDS = {"CA": "706-53473-19255-0", "US": "711-53200-19255-0"}


class AffiliateService:
    """Builds affiliate URLs and counts the clicks that go through them."""

    def __init__(self, store: DealStore, settings: Settings):
        self.store = store
        self.settings = settings

    def build_url(self, source: str, item_id: str, country: str) -> str:
        """Raises AffiliateConfigError rather than emit a URL without its tracking ids."""
        country = normalize_country(country)

        if source == "amazon" and AMAZON_ASIN_RE.match(item_id):
            tag = self.settings.AMAZON_TAG_US if country == "US" else self.settings.AMAZON_TAG_CA
            if not tag:
                raise AffiliateConfigError(f"Amazon affiliate tag for {country} is not configured")
            query = urlencode({"tag": tag})
            return f"https://{AMAZON_DOMAINS[country]}/dp/{item_id}?{query}"

        if source == "ebay" and EBAY_ITEM_RE.match(item_id):
            campaign_id = self.settings.EBAY_CAMPAIGN_ID
            custom_id = self.settings.EBAY_CUSTOM_ID
            if not campaign_id or not custom_id:
                raise AffiliateConfigError("eBay campaign configuration is incomplete")
            query = urlencode({
                "mkevt": "1",
                "mkcid": "1",
                "mkrid": EBAY_ROTATION_IDS[country],
                "campid": campaign_id,
                "customid": custom_id,
            })
            return f"https://{EBAY_DOMAINS[country]}/itm/{item_id}?{query}"

        raise DealValidationError("Invalid redirect request")

    async def source_for_deal(self, country: str, deal_id: str) -> Tuple[str, str]:
        """Maps a stored deal id onto its (source, itemId) pair."""
        store = await self.store.read(country)
        deal = next((d for d in store["deals"] if d.get("id") == deal_id), None)
        if deal is None:
            raise DealNotFoundError()

        source_key = str(deal.get("sourceKey") or "")
        if ":" in source_key:
            source, item_id = source_key.split(":", 1)
            return source, item_id
        if deal.get("asin"):
            return "amazon", str(deal["asin"])
        raise DealNotFoundError("Deal has no affiliate source")

    async def resolve(self, source: str, item_id: str, country: str) -> str:
        """Returns the affiliate URL and bumps clicks on the deal with the matching sourceKey."""
        country = normalize_country(country)
        url = self.build_url(source, item_id, country)

        source_key = f"{source}:{item_id}"
        async with self.store.transaction(country) as store:
            for deal in store["deals"]:
                if deal.get("sourceKey") == source_key:
                    deal["clicks"] = int(deal.get("clicks") or 0) + 1
                    deal["updatedAt"] = utc_now_iso()
                    break

        logger.info(f"Affiliate click {source_key} ({country}) -> {url}")
        return url
