"""Timer endpoints - time tracking operations."""
from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.database import get_database
from app.exceptions import AppError
from app.models.responses import (
    ErrorResponse,
    SummaryData,
    SummaryResponse,
    TimerData,
    TimerListData,
    TimerListResponse,
    TimerResponse,
)
from app.models.time_entry import ManualTimeEntryCreate, TimeEntryUpdate, TimerAction
from app.services.aggregation_service import AggregationService, logged_hours
from app.services.timer_service import TimerService
from app.utils.auth import get_current_user_id


router = APIRouter(
    prefix="/timers",
    tags=["timers"],
    dependencies=[Depends(get_current_user_id)],
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)


def _http_error(e: AppError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/start", response_model=TimerResponse)
async def start_timer(action: TimerAction, db=Depends(get_database)):
    """
    Start a timer for a user, project and task.

    - Restarts the open timer for the same triple instead of creating a second one
    - 400 if any identifier is missing
    """
    service = TimerService(db)
    try:
        entry = await service.start_timer(
            user_id=action.user_id,
            project_id=action.project_id,
            task_id=action.task_id,
            description=action.description,
        )
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.patch("/stop", response_model=TimerResponse)
async def stop_timer(action: TimerAction, db=Depends(get_database)):
    """
    Stop the open timer and compute its duration.

    - 404 if no timer is open for the triple
    """
    service = TimerService(db)
    try:
        entry = await service.stop_timer(
            user_id=action.user_id,
            project_id=action.project_id,
            task_id=action.task_id,
            description=action.description,
        )
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.patch("/pause", response_model=TimerResponse)
async def pause_timer(action: TimerAction, db=Depends(get_database)):
    """
    Pause the running timer.

    - 404 if no running, unpaused timer exists
    """
    service = TimerService(db)
    try:
        entry = await service.pause_timer(
            user_id=action.user_id,
            project_id=action.project_id,
            task_id=action.task_id,
        )
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.patch("/resume", response_model=TimerResponse)
async def resume_timer(action: TimerAction, db=Depends(get_database)):
    """
    Resume a paused timer.

    - 404 if no paused timer exists
    """
    service = TimerService(db)
    try:
        entry = await service.resume_timer(
            user_id=action.user_id,
            project_id=action.project_id,
            task_id=action.task_id,
        )
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.get("/user/{user_id}", response_model=TimerListResponse)
async def get_timers_for_user(user_id: str, db=Depends(get_database)):
    """
    List all time entries of a user with project and task details.
    """
    service = AggregationService(db)
    try:
        entries = await service.entries_for_user(user_id)
    except AppError as e:
        raise _http_error(e)
    return TimerListResponse(
        data=TimerListData(timers=entries, logged_hours=logged_hours(entries))
    )


@router.get("/user/{user_id}/summary", response_model=SummaryResponse)
async def get_user_summary(user_id: str, db=Depends(get_database)):
    """Logged hours for a user, by project and by task."""
    service = AggregationService(db)
    try:
        summary = await service.user_summary(user_id)
    except AppError as e:
        raise _http_error(e)
    return SummaryResponse(data=SummaryData(summary=summary))


@router.get("/project/{project_id}", response_model=TimerListResponse)
async def get_timers_for_project(project_id: str, db=Depends(get_database)):
    """
    List all time entries of a project with user and task details.
    """
    service = AggregationService(db)
    try:
        entries = await service.entries_for_project(project_id)
    except AppError as e:
        raise _http_error(e)
    return TimerListResponse(
        data=TimerListData(timers=entries, logged_hours=logged_hours(entries))
    )


@router.get("/project/{project_id}/summary", response_model=SummaryResponse)
async def get_project_summary(project_id: str, db=Depends(get_database)):
    """Logged hours for a project, by task and by user."""
    service = AggregationService(db)
    try:
        summary = await service.project_summary(project_id)
    except AppError as e:
        raise _http_error(e)
    return SummaryResponse(data=SummaryData(summary=summary))


@router.post("/log", response_model=TimerResponse, status_code=status.HTTP_201_CREATED)
async def log_manual_time(entry_create: ManualTimeEntryCreate, db=Depends(get_database)):
    """
    Log a completed time entry by hand.

    - Duration is computed from startTime and endTime
    - 400 if a required field is missing
    """
    service = TimerService(db)
    try:
        entry = await service.log_manual_time(entry_create)
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.get("/{entry_id}", response_model=TimerResponse)
async def get_time_entry(entry_id: str, db=Depends(get_database)):
    """Get a single time entry."""
    service = TimerService(db)
    try:
        entry = await service.get_time_entry(entry_id)
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.patch("/{entry_id}", response_model=TimerResponse)
async def update_time_entry(
    entry_id: str,
    entry_update: TimeEntryUpdate,
    db=Depends(get_database),
):
    """
    Edit a time entry's duration, date or description.

    - Changing the date keeps the time of day and the stored duration
    """
    service = TimerService(db)
    try:
        entry = await service.update_time_entry(entry_id, entry_update)
    except AppError as e:
        raise _http_error(e)
    return TimerResponse(data=TimerData(timer=entry))


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_time_entry(entry_id: str, db=Depends(get_database)):
    """
    Delete a time entry.

    - Hard delete (permanent)
    """
    service = TimerService(db)
    try:
        await service.delete_time_entry(entry_id)
    except AppError as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
