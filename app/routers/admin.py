# app/routers/admin.py

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.decorator import ValidationFailed
from app.core.dependencies import get_current_admin, get_identity_provider
from app.models.user import User
from app.schemas.bulk_import import CourseImportResponse, UserImportResponse
from app.schemas.user import RoleSyncResponse, UserSyncResponse
from app.services.bulk_import import BulkImportService
from app.services.identity import IdentityProvider
from app.services.user import UserService

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={404: {"description": "Not found"}},
)


@router.post(
    "/users/sync",
    response_model=UserSyncResponse,
    description="Mirror identity-provider accounts into the users table",
)
def sync_users(
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    current_admin: User = Depends(get_current_admin),
):
    """
    Create or refresh a users row for every identity-provider account and
    move enrollments recorded under stale ids onto the provider id.
    """
    return UserService(db).sync_users(provider)


@router.post(
    "/users/sync-roles",
    response_model=RoleSyncResponse,
    description="Copy legacy profile roles onto users",
)
def sync_roles(
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    return UserService(db).sync_roles()


# ==================== Bulk import ====================


async def read_csv_upload(file: UploadFile) -> bytes:
    filename = (file.filename or "").lower()
    if not filename.endswith(".csv") and file.content_type != "text/csv":
        raise ValidationFailed("Invalid file type. Please upload a CSV file.")
    return await file.read()


@router.post(
    "/import/users",
    response_model=UserImportResponse,
    description="Create accounts from a CSV with email, password, name, role and license columns",
)
async def import_users(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    provider: IdentityProvider = Depends(get_identity_provider),
    current_admin: User = Depends(get_current_admin),
):
    content = await read_csv_upload(file)
    return BulkImportService(db).import_users(content, provider)


@router.post(
    "/import/courses",
    response_model=CourseImportResponse,
    description="Create courses from a CSV with title, sku, prices, credits and states",
)
async def import_courses(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_admin: User = Depends(get_current_admin),
):
    """
    Rows are imported one by one; rows that fail (duplicate SKU, bad price,
    missing title) are listed in `errors` and the remaining rows still load.
    """
    content = await read_csv_upload(file)
    return BulkImportService(db).import_courses(content)
