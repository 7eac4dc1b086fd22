from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from dealsignal.core.clock import utc_now_iso

COUNTRIES = ("CA", "US")
DEFAULT_COUNTRY = "CA"


class DealStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISABLED = "disabled"


class ReportStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"


def normalize_country(value: Any) -> str:
    """Anything other than US lands in the CA partition."""
    return "US" if str(value or "").strip().upper() == "US" else DEFAULT_COUNTRY


def normalize_status(value: Any) -> str:
    """Unknown status values are queued as pending."""
    try:
        return DealStatus(str(value or "").strip().lower()).value
    except ValueError:
        return DealStatus.PENDING.value


def empty_store() -> Dict[str, Any]:
    return {"updatedAt": utc_now_iso(), "deals": [], "reports": [], "alerts": []}


# --- Request bodies ---

class DealSubmission(BaseModel):
    """Public submission. Fields outside this model are ignored."""
    title: Optional[str] = None
    price: Optional[float] = None
    originalPrice: Optional[float] = None
    url: Optional[str] = None
    retailer: Optional[str] = None
    category: Optional[str] = None
    imageUrl: Optional[str] = None
    notes: Optional[str] = None
    country: Optional[str] = None


class AdminDealCreate(DealSubmission):
    sourceKey: Optional[str] = None
    expiresAt: Optional[str] = None


class DealPatch(BaseModel):
    """Arbitrary admin field patch."""
    model_config = ConfigDict(extra="allow")

    country: Optional[str] = None


class BulkUpsertRequest(BaseModel):
    deals: List[Dict[str, Any]] = Field(default_factory=list)
    country: Optional[str] = None


class CountryBody(BaseModel):
    country: Optional[str] = None


class ReportCreate(BaseModel):
    reason: Optional[str] = None
    notes: Optional[str] = None
    country: Optional[str] = None


class AlertCreate(BaseModel):
    dealId: Optional[str] = None
    targetPrice: Optional[float] = None
    country: Optional[str] = None
