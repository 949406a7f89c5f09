from fastapi import APIRouter, Depends, status

from app.core.security import Identity
from app.dependencies import get_identity, get_task_for_update, get_task_service
from app.models import ApiResponse, Task, TaskCreate, TaskResponse, TaskUpdate
from app.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(get_identity)])


@router.post(
    "", response_model=ApiResponse[TaskResponse], status_code=status.HTTP_201_CREATED
)
async def create_task(
    task_data: TaskCreate,
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """Create a new task"""
    task = await service.create_task(identity, task_data)
    return ApiResponse(message="Task created successfully", status=201, data=task)


@router.get("", response_model=ApiResponse[list[TaskResponse]])
async def get_tasks(
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    tasks = await service.get_all_tasks(identity)
    return ApiResponse(message="Tasks fetched successfully", data=tasks)


@router.get("/{task_id}", response_model=ApiResponse[TaskResponse])
async def get_task(
    task_id: int,
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """Get a specific task by ID"""
    task, from_cache = await service.get_task(identity, task_id)
    message = "Task found (from cache)" if from_cache else "Task found"
    return ApiResponse(message=message, data=task)


@router.put("/{task_id}", response_model=ApiResponse[TaskResponse])
async def update_task(
    task_data: TaskUpdate,
    task: Task = Depends(get_task_for_update),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    updated = await service.update_task(identity, task, task_data)
    return ApiResponse(message="Task updated successfully", data=updated)


@router.delete("/{task_id}", response_model=ApiResponse[None])
async def delete_task(
    task_id: int,
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """Delete a task"""
    await service.delete_task(identity, task_id)
    return ApiResponse(message="Task deleted successfully")
