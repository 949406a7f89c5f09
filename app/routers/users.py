from fastapi import APIRouter, Depends

from app.core.security import Identity
from app.dependencies import get_identity, get_user_service
from app.models import ApiResponse, UserRead, UserUpdate
from app.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(get_identity)])


@router.get("", response_model=ApiResponse[list[UserRead]])
async def get_users(
    identity: Identity = Depends(get_identity),
    service: UserService = Depends(get_user_service),
):
    """List every user (admin only)"""
    users = await service.get_all_users(identity)
    return ApiResponse(message="Users fetched successfully", data=users)


@router.get("/{user_id}", response_model=ApiResponse[UserRead])
async def get_user(
    user_id: int,
    identity: Identity = Depends(get_identity),
    service: UserService = Depends(get_user_service),
):
    user, from_cache = await service.get_user(identity, user_id)
    message = "User found (from cache)" if from_cache else "User found"
    return ApiResponse(message=message, data=user)


@router.put("/{user_id}", response_model=ApiResponse[UserRead])
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    identity: Identity = Depends(get_identity),
    service: UserService = Depends(get_user_service),
):
    user = await service.update_user(identity, user_id, user_data)
    return ApiResponse(message="User updated successfully", data=user)


@router.delete("/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: int,
    identity: Identity = Depends(get_identity),
    service: UserService = Depends(get_user_service),
):
    await service.delete_user(identity, user_id)
    return ApiResponse(message="User deleted successfully")
