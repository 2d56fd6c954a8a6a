"""
Qubit Message Service - Scheduler Routes

Start, stop and inspect the background dispatch loop, or run one
dispatch cycle by hand.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from qubit.dependencies import get_message_service
from qubit.errors import DispatchError, StoreError
from qubit.schemas.message import SchedulerStatusResponse, StartSchedulerRequest
from qubit.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/start")
def start_scheduler(
    request: Optional[StartSchedulerRequest] = None,
    service: MessageService = Depends(get_message_service),
):
    """Start (or restart with new parameters) the dispatch scheduler"""
    request = request or StartSchedulerRequest()
    try:
        service.start_scheduler(request.intervalMinutes, request.batchSize)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    return {"success": True, "message": "Scheduler started successfully"}


@router.post("/stop")
def stop_scheduler(service: MessageService = Depends(get_message_service)):
    """Stop the dispatch scheduler; stopping twice is fine"""
    service.stop_scheduler()
    return {"success": True, "message": "Scheduler stopped successfully"}


@router.get("/status")
def scheduler_status(service: MessageService = Depends(get_message_service)):
    """Get current scheduler state and queue depth"""
    try:
        pending = service.count_pending()
    except StoreError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    status = SchedulerStatusResponse.from_status(
        service.scheduler_status(),
        batch_size=service.dispatch_settings.batch_size,
        pending=pending,
    )
    return status.model_dump(mode="json")


@router.post("/run")
def run_dispatch(service: MessageService = Depends(get_message_service)):
    """
    Manually trigger one dispatch cycle.

    Waits for a scheduled cycle in progress to finish first.
    """
    try:
        result = service.process_unsent_messages()
    except (DispatchError, StoreError) as e:
        logger.error(f"Manual dispatch failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {"success": True, **result.to_dict()}
