from fastapi import APIRouter, Depends, HTTPException, status
from typing import List

from models.user import Actor
from models.workflow_event import WorkflowEvent
from routers.auth import get_current_actor
from routers.purchase_requests import get_workflow, workflow_http_error
from workflow.engine import PurchaseRequestWorkflow
from workflow.errors import WorkflowError
from logging_config import logger

router = APIRouter()

# Event history for a request
@router.get(
    "/requests/{request_id}",
    response_model=List[WorkflowEvent],
    summary="Get request history",
    description="Workflow events recorded for a purchase request, oldest first."
)
async def get_request_history(
    request_id: str,
    current_user: Actor = Depends(get_current_actor),
    workflow: PurchaseRequestWorkflow = Depends(get_workflow)
):
    try:
        events = await workflow.list_events(request_id)
        logger.debug(f"Found {len(events)} events for request {request_id}")
        return events
    except WorkflowError as e:
        raise workflow_http_error(e)
    except Exception as e:
        logger.error(f"Error loading events for request {request_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading request history"
        )
