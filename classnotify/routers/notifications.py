"""Group notification dispatch endpoints."""
from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from classnotify.dependencies import get_notification_service, get_task_queue
from classnotify.errors import (
    DispatchNotFoundError,
    GroupNotFoundError,
    InvalidDispatchParametersError,
    TaskNotFoundError,
    UnknownCategoryError,
)
from classnotify.models.schemas import (
    DispatchOutcomeResponse,
    DispatchRecordResponse,
    DispatchRequest,
    DispatchResponse,
    TaskAcceptedResponse,
    TaskStatusResponse,
)
from classnotify.services.notification_service import DispatchResult, NotificationService
from classnotify.services.task_queue import NotificationTaskQueue, TaskStatus


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])

ServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
QueueDep = Annotated[NotificationTaskQueue, Depends(get_task_queue)]


def _to_response(result: DispatchResult) -> DispatchResponse:
    return DispatchResponse(**result.counts())


@router.post("/dispatch", response_model=DispatchResponse)
async def dispatch_notifications(payload: DispatchRequest, service: ServiceDep) -> DispatchResponse:
    """
    Notify every eligible member of a group and wait for delivery to finish.

    Per-recipient failures are reported in the counts; the call still succeeds.

    Raises:
        HTTPException: 404 if the group does not exist, 500 on unexpected errors
    """
    try:
        result = await service.notify_group(payload.group_id, payload.category, payload.announcement)
    except GroupNotFoundError:
        raise HTTPException(status_code=404, detail="Group not found")
    except (InvalidDispatchParametersError, UnknownCategoryError) as err:
        raise HTTPException(status_code=400, detail=str(err))
    except Exception:
        logger.exception("Failed to send %s notifications for group %s", payload.category.value, payload.group_id)
        raise HTTPException(status_code=500, detail="Failed to send notifications")

    return _to_response(result)


@router.post("/dispatch/async", response_model=TaskAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_dispatch(payload: DispatchRequest, service: ServiceDep, queue: QueueDep) -> TaskAcceptedResponse:
    """Queue a group notification and return a task id to poll."""

    try:
        service.ensure_group(payload.group_id)
    except GroupNotFoundError:
        raise HTTPException(status_code=404, detail="Group not found")

    async def job() -> DispatchResult:
        return await service.notify_group(payload.group_id, payload.category, payload.announcement)

    record = queue.submit(job, name=f"{payload.category.value}:{payload.group_id}")
    return TaskAcceptedResponse(task_id=record.task_id, status=record.status.value)


@router.get("/tasks/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(task_id: str, queue: QueueDep) -> TaskStatusResponse:
    try:
        record = queue.get(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")

    summary = None
    if record.status is TaskStatus.SUCCEEDED and isinstance(record.result, DispatchResult):
        summary = _to_response(record.result)
    return TaskStatusResponse(
        task_id=record.task_id,
        status=record.status.value,
        summary=summary,
        error=record.error,
    )


@router.get("/dispatches/{dispatch_id}", response_model=DispatchRecordResponse)
async def get_dispatch(dispatch_id: str, service: ServiceDep) -> DispatchRecordResponse:
    """Return the stored counts and per-recipient outcomes of a past dispatch."""

    try:
        record = service.get_dispatch(dispatch_id)
    except DispatchNotFoundError:
        raise HTTPException(status_code=404, detail="Dispatch not found")

    return DispatchRecordResponse(
        dispatch_id=record.id,
        group_id=record.group_id,
        category=record.category,
        notified=record.sent_count,
        failed=record.failed_count,
        skipped=record.skipped_count,
        total=record.total_count,
        batches=record.batch_count,
        created_at=record.created_at,
        outcomes=[
            DispatchOutcomeResponse(
                recipient_id=o.recipient_id,
                email=o.email,
                status=o.status,
                error=o.error,
                reason=o.reason,
            )
            for o in record.outcomes
        ],
    )
