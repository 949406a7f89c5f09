from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse

from app.core.context import AppContext
from app.core.security import Identity
from app.dependencies import get_context, get_identity, get_user_service
from app.models import ApiResponse, ProfilePictureResult, UploadResult
from app.services.file_service import FileService
from app.services.user_service import UserService

router = APIRouter(prefix="/upload", tags=["upload"], dependencies=[Depends(get_identity)])


def get_file_service(context: AppContext = Depends(get_context)) -> FileService:
    return FileService(context.settings)


@router.post("", response_model=ApiResponse[UploadResult])
async def upload_file(
    file: UploadFile = File(...),
    files: FileService = Depends(get_file_service),
):
    """Store an image or PDF (max 5MB) under a generated name"""
    result = await files.save(file)
    return ApiResponse(message="File uploaded successfully", data=result)


@router.post("/profile_picture", response_model=ApiResponse[ProfilePictureResult])
async def upload_profile_picture(
    profile_picture: UploadFile = File(...),
    identity: Identity = Depends(get_identity),
    files: FileService = Depends(get_file_service),
    users: UserService = Depends(get_user_service),
):
    await users.get_user_row(identity.user_id)
    stored = await files.save(profile_picture)
    url = f"/uploads/{stored.filename}"
    await users.set_profile_picture(identity.user_id, url)
    return ApiResponse(
        message="Profile picture uploaded successfully",
        data=ProfilePictureResult(profile_picture=url),
    )


@router.get("/{filename}")
async def get_file(filename: str, files: FileService = Depends(get_file_service)):
    return FileResponse(files.resolve(filename))
