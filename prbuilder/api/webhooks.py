"""
Webhook endpoints for GitHub events and Jenkins notifications.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import ValidationError

from prbuilder.models.api_response import WebhookResponse
from prbuilder.services.orchestrator import UnknownEventError, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


async def _read_json(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body is not JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


@router.post("/event_handler", status_code=202, response_model=WebhookResponse)
async def handle_github_event(
    request: Request,
    x_github_event: str = Header(None, alias="X-GitHub-Event"),
) -> WebhookResponse:
    """
    Receive a GitHub webhook event.

    The payload is validated against the shape of its event type and queued;
    processing happens asynchronously after the response is sent.

    Raises:
        HTTPException: 400 if the event type is not consumed or the payload is invalid
    """
    payload = await _read_json(request)
    try:
        get_orchestrator().submit_github_event(x_github_event or "", payload)
    except UnknownEventError as e:
        logger.info(f"Rejecting event: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        logger.warning(f"Invalid {x_github_event} payload: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid {x_github_event} payload")

    logger.info(f"Received event: {x_github_event}")
    return WebhookResponse(status="accepted", message=f"{x_github_event} event accepted for processing")


@router.post("/jenkins", status_code=202, response_model=WebhookResponse)
async def handle_jenkins_notification(request: Request) -> WebhookResponse:
    """
    Receive a Jenkins notification plugin callback.

    Raises:
        HTTPException: 400 if the payload is not a build notification
    """
    payload = await _read_json(request)
    try:
        notification = get_orchestrator().submit_jenkins_notification(payload)
    except ValidationError as e:
        logger.warning(f"Invalid Jenkins notification: {e}")
        raise HTTPException(status_code=400, detail="Invalid Jenkins notification")

    return WebhookResponse(
        status="accepted",
        message=f"{notification.build.phase.value} notification for {notification.name} accepted"
    )
