"""
FastAPI dependencies. Services are built once in the app lifespan and kept on app.state.
The caller's identity arrives from the upstream auth gateway in the X-User-Id header.
"""
from fastapi import Depends, Header, HTTPException, Request

from orderflow.collaborators import UserDirectory
from orderflow.models import Actor
from orderflow.notifications import NotificationService
from orderflow.workflow import OrderWorkflow


def get_user_directory(request: Request) -> UserDirectory:
    return request.app.state.users


def get_workflow(request: Request) -> OrderWorkflow:
    return request.app.state.workflow


def get_notification_service(request: Request) -> NotificationService:
    return request.app.state.notification_service


async def get_actor(
    x_user_id: str | None = Header(default=None),
    users: UserDirectory = Depends(get_user_directory),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = await users.find_by_id(x_user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return Actor.from_user(user)
