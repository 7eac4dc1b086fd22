import secrets
from typing import Optional
from fastapi import Request

from dealsignal.core.config import Settings
from dealsignal.core.errors import AdminAuthError, UnauthenticatedError
from dealsignal.models.deals import normalize_country
from dealsignal.repositories.deals import DealStore
from dealsignal.services.affiliate import AffiliateService
from dealsignal.services.alerts import AlertsService
from dealsignal.services.deals import DealsService
from dealsignal.services.submissions import SubmissionRateLimiter

def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_deal_store(request: Request) -> DealStore:
    return request.app.state.deal_store

def get_deals_service(request: Request) -> DealsService:
    return request.app.state.deals_service

def get_alerts_service(request: Request) -> AlertsService:
    return request.app.state.alerts_service

def get_affiliate_service(request: Request) -> AffiliateService:
    return request.app.state.affiliate_service

def get_rate_limiter(request: Request) -> SubmissionRateLimiter:
    return request.app.state.rate_limiter

def require_admin(request: Request) -> None:
    """Shared-secret check on x-admin-key: 401 when missing, 403 when wrong."""
    expected = request.app.state.settings.ADMIN_KEY.strip()
    if not expected:
        raise AdminAuthError("Admin access is not configured", status_code=403)
    provided = request.headers.get("x-admin-key", "").strip()
    if not provided:
        raise AdminAuthError("Admin key required", status_code=401)
    if not secrets.compare_digest(provided.encode(), expected.encode()):
        raise AdminAuthError("Unauthorized", status_code=403)

def get_user_id(request: Request) -> Optional[str]:
    email = request.headers.get("x-user-email", "").strip().lower()
    return email or None

def require_user_id(request: Request) -> str:
    user_id = get_user_id(request)
    if not user_id:
        raise UnauthenticatedError("Login required")
    return user_id

def resolve_country(request: Request, body_country: Optional[str] = None) -> str:
    """Query parameter, then x-country header, then body field, then CA."""
    for candidate in (
        request.query_params.get("country"),
        request.headers.get("x-country"),
        body_country,
    ):
        if candidate and str(candidate).strip():
            return normalize_country(candidate)
    return normalize_country(None)

def get_country(request: Request) -> str:
    return resolve_country(request)

def client_identity(request: Request) -> str:
    return get_user_id(request) or (request.client.host if request.client else "anonymous")
