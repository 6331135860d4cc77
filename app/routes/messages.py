"""
Messaging Routes
Queue outbound messages for the follower roster and inspect recent jobs.

All endpoints require a session credential minted at LINE Login.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from app.auth.verify import auth_dependency
from app.infrastructure.observability.logging import get_logger, preview
from app.models.api.messaging_request import SendMessageRequest
from app.models.api.messaging_response import (
    MessageJobListResponse,
    MessageJobResponse,
    RecipientListResponse,
    RecipientResponse,
    SendMessageResponse,
)
from app.repositories.message_repository import MessageRepositoryError
from app.repositories.recipient_repository import recipient_repository
from app.services.messaging.batch_dispatcher import InvalidMessageContent, format_line_messages
from app.services.messaging.message_job_service import (
    create_message_job,
    list_recent_messages,
    process_message_job,
)
from app.services.messaging.target_resolver import TargetResolutionError, validate_target

logger = get_logger(__name__)

router = APIRouter(tags=["messages"])


@router.post("/send-message", response_model=SendMessageResponse)
async def send_message(
    body: SendMessageRequest,
    background_tasks: BackgroundTasks,
    claims: dict = Depends(auth_dependency),
):
    """
    Queue a message job. Unscheduled (or already due) jobs are processed right
    after the response is sent; future ones are left for the scheduler.

    Raises:
        400: Missing or invalid content or target
        503: Job could not be stored
    """
    if body.content is None or body.target is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: content and target",
        )

    content = body.content.to_domain()
    target = body.target.to_domain()

    try:
        format_line_messages(content)
        validate_target(target)
    except (InvalidMessageContent, TargetResolutionError) as e:
        logger.warning("Rejected message request", error=str(e))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from None

    try:
        job = await create_message_job(
            content, target, scheduled_at=body.scheduled_at, created_by=claims.get("sub")
        )
    except MessageRepositoryError as e:
        logger.error("Failed to queue message job", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Message queue temporarily unavailable",
        ) from None

    if job.is_due():
        background_tasks.add_task(process_message_job, job.id)

    logger.info(
        "Message job queued",
        message_id=job.id,
        target_type=target.type,
        scheduled=job.scheduled_at is not None,
        created_by_preview=preview(claims.get("sub")),
    )
    return SendMessageResponse(message_id=job.id)


@router.get("/users", response_model=RecipientListResponse)
async def list_users(claims: dict = Depends(auth_dependency)):
    """Active followers of the channel."""
    recipients = await recipient_repository.list_active()
    return RecipientListResponse(
        users=[RecipientResponse.from_domain(recipient) for recipient in recipients],
        count=len(recipients),
    )


@router.get("/messages", response_model=MessageJobListResponse)
async def list_messages(
    limit: int = Query(default=20, ge=1, le=100),
    claims: dict = Depends(auth_dependency),
):
    """Most recent message jobs, newest first."""
    jobs = await list_recent_messages(limit)
    return MessageJobListResponse(
        messages=[MessageJobResponse.from_domain(job) for job in jobs],
        count=len(jobs),
    )
