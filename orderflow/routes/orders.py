from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from orderflow.deps import get_actor, get_workflow
from orderflow.models import Actor
from orderflow.order_state import OrderStatus
from orderflow.workflow import OrderWorkflow

router = APIRouter(tags=["orders"])


class OrderItemBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    menu_item_id: str = Field(..., alias="menuItemId")
    quantity: int = Field(default=1, ge=1)


class CreateOrderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    restaurant_id: str = Field(..., alias="restaurantId")
    items: list[OrderItemBody] = Field(..., description="Menu items and quantities; must not be empty")
    delivery_address: str | None = Field(default=None, alias="deliveryAddress")


class ChangeStatusBody(BaseModel):
    status: OrderStatus
    reason: str | None = Field(default=None, max_length=500)


class AssignRiderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rider_id: str = Field(..., alias="riderId")


class RiderStatusBody(BaseModel):
    status: str = Field(..., description="PICKED_UP or DELIVERED")


@router.post("/orders")
async def create_order(
    body: CreateOrderBody,
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    outcome = await workflow.create_order(
        actor,
        body.restaurant_id,
        [(item.menu_item_id, item.quantity) for item in body.items],
        body.delivery_address,
    )
    return JSONResponse(
        status_code=201,
        content={"status": "ok", "order": outcome.order.model_dump(mode="json")},
    )


@router.get("/orders")
async def list_orders(
    status: OrderStatus | None = Query(default=None),
    restaurant_id: str | None = Query(default=None, alias="restaurantId"),
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    """Orders visible to the caller: own, owned restaurants', assigned (or pickup board), or all for admin."""
    orders = await workflow.list_orders(actor, status=status, restaurant_id=restaurant_id)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "orders": [o.model_dump(mode="json") for o in orders]},
    )


@router.get("/orders/{order_id}")
async def get_order(
    order_id: str,
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    order = await workflow.get_order(actor, order_id)
    return JSONResponse(status_code=200, content={"status": "ok", "order": order.model_dump(mode="json")})


@router.put("/orders/{order_id}/status")
async def change_status(
    order_id: str,
    body: ChangeStatusBody,
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    outcome = await workflow.change_status(actor, order_id, body.status, body.reason)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "order": outcome.order.model_dump(mode="json")},
    )


@router.put("/orders/{order_id}/assign-rider")
async def assign_rider(
    order_id: str,
    body: AssignRiderBody,
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    outcome = await workflow.assign_rider(actor, order_id, body.rider_id)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "order": outcome.order.model_dump(mode="json")},
    )


@router.get("/rider/orders")
async def rider_orders(
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    orders = await workflow.rider_orders(actor)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "orders": [o.model_dump(mode="json") for o in orders]},
    )


@router.put("/rider/orders/{order_id}/status")
async def rider_change_status(
    order_id: str,
    body: RiderStatusBody,
    actor: Actor = Depends(get_actor),
    workflow: OrderWorkflow = Depends(get_workflow),
) -> JSONResponse:
    outcome = await workflow.rider_change_status(actor, order_id, body.status)
    return JSONResponse(
        status_code=200,
        content={"status": "ok", "order": outcome.order.model_dump(mode="json")},
    )
