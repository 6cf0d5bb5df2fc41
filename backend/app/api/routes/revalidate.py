"""On-demand invalidation for the in-process cache and the page-rendering layer."""
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.deps import get_services, require_revalidate_secret
from app.services.container import Services
from app.services.invalidation import invalidate

router = APIRouter()


class RevalidateRequest(BaseModel):
    path: str | None = None


@router.post("/revalidate", dependencies=[Depends(require_revalidate_secret)])
def revalidate(body: RevalidateRequest | None = None, services: Services = Depends(get_services)):
    return invalidate(services, path=body.path if body else None)
