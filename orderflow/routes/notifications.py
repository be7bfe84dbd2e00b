from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from orderflow.deps import get_actor, get_notification_service
from orderflow.models import Actor
from orderflow.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def list_notifications(
    is_read: bool | None = Query(default=None, alias="isRead"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1),
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> JSONResponse:
    result = await service.list_notifications(actor.id, is_read=is_read, page=page, limit=limit)
    return JSONResponse(
        status_code=200,
        content={
            "status": "ok",
            "notifications": [n.model_dump(mode="json") for n in result["notifications"]],
            "pagination": result["pagination"],
        },
    )


@router.get("/unread-count")
async def unread_count(
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> JSONResponse:
    count = await service.unread_count(actor.id)
    return JSONResponse(status_code=200, content={"status": "ok", "count": count})


@router.put("/read-all")
async def mark_all_read(
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> JSONResponse:
    updated = await service.mark_all_read(actor.id)
    return JSONResponse(status_code=200, content={"status": "ok", "updated": updated})


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_actor),
    service: NotificationService = Depends(get_notification_service),
) -> JSONResponse:
    notification = await service.mark_read(actor.id, notification_id)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "notification": notification.model_dump(mode="json")},
    )
