from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, status

from guest_messaging.api.deps import CurrentOperator, CurrentPrincipal, UoWDep
from guest_messaging.api.v1.schemas.message import (
    EnqueueMessageRequest,
    EnqueueMessageResponse,
    QueueItemResponse,
    QueueStatsResponse,
)
from guest_messaging.domain.entities.queue_item import QueueItemId
from guest_messaging.services import dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.post(
    "/messages",
    response_model=EnqueueMessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def enqueue_message(
    body: EnqueueMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> EnqueueMessageResponse:
    item_id = await dispatcher.enqueue(
        body.recipient,
        body.payload,
        uow,
        body.priority,
        scheduled_at=body.scheduled_at,
    )
    logger.info("Message %s accepted from %s", item_id, principal)
    return EnqueueMessageResponse(id=item_id)


@router.get("/messages/{item_id}", response_model=QueueItemResponse)
async def get_message(
    item_id: UUID,
    operator: CurrentOperator,
    uow: UoWDep,
) -> QueueItemResponse:
    item = await dispatcher.get_item(QueueItemId(item_id), uow)
    return QueueItemResponse.model_validate(item, from_attributes=True)


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(operator: CurrentOperator, uow: UoWDep) -> QueueStatsResponse:
    return QueueStatsResponse(**await dispatcher.get_stats(uow))
