from fastapi import APIRouter, Depends, status

from app.dependencies import get_user_service
from app.models import ApiResponse, LoginResult, RegisterResult, UserLogin, UserRegister
from app.services.user_service import UserService

router = APIRouter(tags=["auth"])


@router.post(
    "/register",
    response_model=ApiResponse[RegisterResult],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    user_data: UserRegister, service: UserService = Depends(get_user_service)
):
    """Register a member account. Duplicate username or email answers 409."""
    user_id = await service.register(user_data)
    return ApiResponse(
        message="User created successfully", status=201, data=RegisterResult(id=user_id)
    )


@router.post("/login", response_model=ApiResponse[LoginResult])
async def login(credentials: UserLogin, service: UserService = Depends(get_user_service)):
    """Exchange username and password for a bearer token valid for one hour."""
    result = await service.login(credentials)
    return ApiResponse(message="Login success", data=result)
