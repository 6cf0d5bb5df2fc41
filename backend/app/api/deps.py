"""Shared route dependencies: the Services container, caller identity, shared-secret guards."""
import hmac

from fastapi import Depends, Header, HTTPException, Query, Request

from app.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_user_id(x_user_id: str | None = Header(None)) -> str:
    """Caller identity from X-User-Id (set by the auth proxy in front of this service)."""
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return uid


def _check_secret(expected: str, authorization: str | None, secret: str | None) -> None:
    if not expected:
        return
    provided = secret or ""
    if authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]
    if not hmac.compare_digest(provided.strip().encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_cron_secret(
    services: Services = Depends(get_services),
    authorization: str | None = Header(None),
    secret: str | None = Query(None),
) -> None:
    """Bearer CRON_SECRET (or ?secret=) when configured; open otherwise (local dev)."""
    _check_secret(services.settings.cron_secret, authorization, secret)


def require_revalidate_secret(
    services: Services = Depends(get_services),
    authorization: str | None = Header(None),
    secret: str | None = Query(None),
) -> None:
    _check_secret(services.settings.revalidate_secret, authorization, secret)
