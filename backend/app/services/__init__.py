from app.services.container import Services, build_services
from app.services.post_service import (
    average_down,
    close_position,
    create_post,
    delete_post,
    record_like,
    record_view,
    update_post,
)

__all__ = [
    "Services",
    "build_services",
    "create_post",
    "update_post",
    "delete_post",
    "average_down",
    "close_position",
    "record_view",
    "record_like",
]
