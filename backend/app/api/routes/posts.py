"""
Posts API: create/edit/delete reports and the position actions (averaging down, close).
Identity comes from X-User-Id; only the author can modify a post.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.deps import get_services, get_user_id
from app.db.session import get_db
from app.services import post_service
from app.services.container import Services

router = APIRouter()


class PostCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ticker: str
    initial_price: float = Field(alias="initialPrice", gt=0)
    title: str = ""
    author_name: str | None = Field(None, alias="authorName")
    stock_name: str | None = Field(None, alias="stockName")
    exchange: str | None = None
    opinion: str = "buy"
    position_type: str | None = Field(None, alias="positionType")
    target_price: float | None = Field(None, alias="targetPrice")
    category: str | None = None


class PostUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    stock_name: str | None = Field(None, alias="stockName")
    category: str | None = None
    opinion: str | None = None
    target_price: float | None = Field(None, alias="targetPrice")


class AveragingDownRequest(BaseModel):
    quantity: float | None = Field(None, gt=0)


class CloseRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    closed_return_rate: float | None = Field(None, alias="closedReturnRate")
    closed_price: float | None = Field(None, alias="closedPrice", gt=0)


@router.post("", status_code=201)
def create_post(
    body: PostCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return post_service.create_post(db, services, author_id=user_id, **body.model_dump())


@router.patch("/{post_id}")
def update_post(
    post_id: str,
    body: PostUpdate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    return post_service.update_post(db, services, post_id, user_id, **body.model_dump(exclude_unset=True))


@router.delete("/{post_id}")
def delete_post(
    post_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    post_service.delete_post(db, services, post_id, user_id)
    return {"success": True, "id": post_id}


@router.post("/{post_id}/averaging-down")
def averaging_down(
    post_id: str,
    body: AveragingDownRequest | None = None,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    quantity = body.quantity if body else None
    post = post_service.average_down(db, services, post_id, user_id, quantity=quantity)
    return {"success": True, "post": post}


@router.post("/{post_id}/close")
def close_position(
    post_id: str,
    body: CloseRequest | None = None,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
    services: Services = Depends(get_services),
):
    body = body or CloseRequest()
    post = post_service.close_position(
        db,
        services,
        post_id,
        user_id,
        closed_return_rate=body.closed_return_rate,
        closed_price=body.closed_price,
    )
    return {"success": True, "post": post}


@router.post("/{post_id}/view")
def record_view(post_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    return {"id": post_id, "views": post_service.record_view(db, services, post_id)}


@router.post("/{post_id}/like")
def record_like(post_id: str, db: Session = Depends(get_db), services: Services = Depends(get_services)):
    return {"id": post_id, "likes": post_service.record_like(db, services, post_id)}
