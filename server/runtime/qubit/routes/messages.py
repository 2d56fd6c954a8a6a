"""
Qubit Message Service - Message Routes

Queue new messages and list the ones already delivered.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from qubit.dependencies import get_message_service
from qubit.errors import StoreError, ValidationFailed
from qubit.schemas.message import CreateMessageRequest, MessageListResponse, MessageResponse
from qubit.services.message_service import MessageService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def get_sent_messages(service: MessageService = Depends(get_message_service)):
    """Return all sent messages, oldest first"""
    try:
        messages = service.get_sent_messages()
    except StoreError as e:
        logger.error(f"Failed to retrieve sent messages: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Failed to retrieve sent messages: {e}"},
        )

    responses = [MessageResponse.from_model(m) for m in messages]
    return MessageListResponse(count=len(responses), messages=responses).model_dump(mode="json")


@router.post("", status_code=201)
def create_message(
    request: CreateMessageRequest,
    service: MessageService = Depends(get_message_service),
):
    """
    Queue a new message for delivery.

    The message is validated first; invalid input is rejected with the
    offending field and rule and nothing is stored.
    """
    try:
        message = service.create_message(request.phoneNumber, request.content)
    except ValidationFailed as e:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": f"validation failed: {e}",
                "field": e.field,
                "constraint": e.constraint,
            },
        )
    except StoreError as e:
        logger.error(f"Failed to create message: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": f"Failed to create message: {e}"},
        )

    return {
        "success": True,
        "message": "Message created successfully",
        "data": MessageResponse.from_model(message).model_dump(mode="json"),
    }
