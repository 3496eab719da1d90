"""Queue trigger: create a base plan generation job."""

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from app.api.dependencies.auth import get_current_user_id
from app.jobs.errors import PlanJobRequestError
from app.jobs.queue import CreateJobRequest, CreateJobResponse, CreateJobStatus, submit_plan_job
from app.workers.plan_queue import dispatch_plan_queue

router = APIRouter(prefix="/plan-jobs", tags=["plan-jobs"])


@router.post("", response_model=CreateJobResponse)
async def create_plan_job_endpoint(
    request: CreateJobRequest,
    user_id: str = Depends(get_current_user_id),
) -> CreateJobResponse:
    """Enqueue base plan generation for the current cycle week.

    Returns immediately; the plan is generated by a queue worker. Duplicate
    requests return the active job with status "existing".

    Raises:
        HTTPException: 400 for an invalid snapshot, redo reason, or a redo
            without a plan; 500 on unexpected errors
    """
    logger.info("Plan job requested", user_id=user_id, is_redo=request.is_redo, force=request.force_regenerate)

    try:
        response = await submit_plan_job(user_id, request)
    except PlanJobRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.exception("Failed to create plan job", user_id=user_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create plan job",
        ) from e

    if response.status in (CreateJobStatus.CREATED, CreateJobStatus.REDO_STARTED):
        dispatch_plan_queue()
    return response
