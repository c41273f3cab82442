"""
Study material APIs: upload, browse, search, edit and download.
"""
from fastapi import APIRouter, Depends, HTTPException, status, File, Form, UploadFile, Query, Request, Response
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
import base64

from database.models import UserRole, AuditAction
from database.schemas import Account, Material
from database.stores import CredentialStore, MaterialStore, AuditLogStore
from auth.dependencies import (
    require_user, require_teacher, get_current_account_optional,
    get_credential_store, get_material_store, get_audit_store
)
from auth.security import generate_material_id, decode_download_token
from core.validators import sanitize_filename, validate_material_extension, validate_file_size
from services.audit_service import AuditService
from core.logger import logger
import config


router = APIRouter(prefix="/api/materials", tags=["materials"])


class MaterialUpdate(BaseModel):
    """Update material metadata."""
    title: Optional[str] = None
    description: Optional[str] = None
    subject: Optional[str] = None
    semester: Optional[int] = None
    academicYear: Optional[int] = None
    tags: Optional[List[str]] = None
    isActive: Optional[bool] = None


class MaterialStatusUpdate(BaseModel):
    isActive: bool


class MaterialListResponse(BaseModel):
    """Material list response."""
    data: List[dict]
    total: int


def _parse_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def _validate_semester(semester: int):
    if not 1 <= semester <= config.MAX_SEMESTER:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Semester must be between 1 and {config.MAX_SEMESTER}"
        )


def _get_material_or_404(store: MaterialStore, material_id: str) -> Material:
    material = store.get(material_id)
    if not material:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Material not found"
        )
    return material


def _check_can_manage(account: Account, material: Material):
    """Admins manage every material, teachers only their own."""
    if account.role == UserRole.ADMIN:
        return
    if account.role == UserRole.TEACHER and material.uploadedBy == account.id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Access denied"
    )


def _check_can_view(account: Account, material: Material):
    if account.role == UserRole.STUDENT:
        if not material.is_visible_to(account):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Material is not available for your semester"
            )
        return
    _check_can_manage(account, material)


def _materials_for(account: Account, store: MaterialStore) -> List[Material]:
    if account.role == UserRole.ADMIN:
        return store.list_materials()
    if account.role == UserRole.TEACHER:
        return store.by_teacher(account.id)
    return store.for_student(account)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def upload_material(
    request: Request,
    file: UploadFile = File(...),
    title: str = Form(...),
    subject: str = Form(...),
    semester: int = Form(...),
    academicYear: int = Form(...),
    description: str = Form(""),
    tags: Optional[str] = Form(None, description="Comma separated"),
    current_account: Account = Depends(require_teacher),
    store: MaterialStore = Depends(get_material_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Upload a study material. The file is stored base64-encoded alongside its metadata.
    Teacher and Admin only.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="No filename provided")

    try:
        safe_filename = sanitize_filename(file.filename)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid filename: {str(e)}")

    if not validate_material_extension(safe_filename, config.ALLOWED_MATERIAL_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(config.ALLOWED_MATERIAL_EXTENSIONS))}"
        )

    if not title.strip() or not subject.strip():
        raise HTTPException(status_code=400, detail="Title and subject are required")
    _validate_semester(semester)

    content = await file.read()
    is_valid_size, size_error = validate_file_size(len(content), config.MAX_MATERIAL_SIZE_MB * 1024 * 1024)
    if not is_valid_size:
        raise HTTPException(status_code=400, detail=size_error)

    material = Material(
        id=generate_material_id(),
        title=title.strip(),
        description=description.strip(),
        fileName=safe_filename,
        fileSize=len(content),
        fileType=file.content_type or "application/octet-stream",
        uploadedBy=current_account.id,
        uploadedByName=current_account.full_name,
        uploadDate=datetime.utcnow().isoformat(),
        semester=semester,
        academicYear=academicYear,
        subject=subject.strip(),
        tags=_parse_tags(tags),
        isActive=True,
        downloadCount=0
    )
    with store.lock:
        store.save_file(material.id, base64.b64encode(content).decode("ascii"))
        store.save(material)
    logger.info(f"Material uploaded: {material.id} ({safe_filename}, {len(content)} bytes) by {current_account.username}")

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.MATERIAL_UPLOAD,
        details=f"Uploaded material: {material.title} ({material.subject}, semester {material.semester})"
    )
    return material.model_dump(mode="json")


@router.get("", response_model=MaterialListResponse)
async def list_materials(
    search: Optional[str] = Query(None, description="Search title, description and tags"),
    semester: Optional[int] = Query(None, ge=1),
    subject: Optional[str] = Query(None),
    current_account: Account = Depends(require_user),
    store: MaterialStore = Depends(get_material_store)
):
    """
    Materials for the current user: all for admins, own uploads for teachers,
    visible materials for students.
    """
    materials = _materials_for(current_account, store)
    if search:
        needle = search.lower()
        materials = [
            m for m in materials
            if needle in m.title.lower()
            or needle in m.description.lower()
            or any(needle in tag.lower() for tag in m.tags)
        ]
    if semester:
        materials = [m for m in materials if m.semester == semester]
    if subject:
        materials = [m for m in materials if m.subject == subject]

    return MaterialListResponse(data=[m.model_dump(mode="json") for m in materials], total=len(materials))


@router.get("/subjects", response_model=List[str])
async def list_subjects(
    current_account: Account = Depends(require_user),
    store: MaterialStore = Depends(get_material_store)
):
    """Distinct subjects across all materials."""
    return store.subjects()


@router.get("/search", response_model=MaterialListResponse)
async def search_materials(
    q: Optional[str] = Query(None, description="Search title, description and tags"),
    semester: Optional[int] = Query(None, ge=1),
    subject: Optional[str] = Query(None),
    current_account: Account = Depends(require_user),
    store: MaterialStore = Depends(get_material_store)
):
    """Search active materials. Students only see materials visible to them."""
    materials = store.search(q, semester, subject)
    if current_account.role == UserRole.STUDENT:
        materials = [m for m in materials if m.is_visible_to(current_account)]
    return MaterialListResponse(data=[m.model_dump(mode="json") for m in materials], total=len(materials))


@router.get("/{material_id}", response_model=dict)
async def get_material(
    material_id: str,
    current_account: Account = Depends(require_user),
    store: MaterialStore = Depends(get_material_store)
):
    """Get one material."""
    material = _get_material_or_404(store, material_id)
    _check_can_view(current_account, material)
    return material.model_dump(mode="json")


@router.put("/{material_id}", response_model=dict)
async def update_material(
    material_id: str,
    payload: MaterialUpdate,
    request: Request,
    current_account: Account = Depends(require_teacher),
    store: MaterialStore = Depends(get_material_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Update material metadata.
    Owner teacher or Admin.
    """
    changes = payload.model_dump(exclude_none=True)
    if "semester" in changes:
        _validate_semester(changes["semester"])

    with store.lock:
        material = _get_material_or_404(store, material_id)
        _check_can_manage(current_account, material)
        updated = material.model_copy(update=changes)
        store.save(updated)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.MATERIAL_UPDATE,
        details=f"Updated material: {updated.title} ({', '.join(sorted(changes)) or 'no changes'})"
    )
    return updated.model_dump(mode="json")


@router.patch("/{material_id}/status", response_model=dict)
async def set_material_status(
    material_id: str,
    payload: MaterialStatusUpdate,
    request: Request,
    current_account: Account = Depends(require_teacher),
    store: MaterialStore = Depends(get_material_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """Activate or deactivate a material without removing it."""
    with store.lock:
        material = _get_material_or_404(store, material_id)
        _check_can_manage(current_account, material)
        material.isActive = payload.isActive
        store.save(material)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.MATERIAL_UPDATE,
        details=f"{'Activated' if material.isActive else 'Deactivated'} material: {material.title}"
    )
    return material.model_dump(mode="json")


@router.delete("/{material_id}")
async def delete_material(
    material_id: str,
    request: Request,
    current_account: Account = Depends(require_teacher),
    store: MaterialStore = Depends(get_material_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Delete a material and its file.
    Owner teacher or Admin.
    """
    material = _get_material_or_404(store, material_id)
    _check_can_manage(current_account, material)
    store.delete(material_id)

    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=current_account.id,
        actor_name=current_account.full_name,
        action=AuditAction.MATERIAL_DELETE,
        details=f"Deleted material: {material.title}"
    )
    return {"success": True}


@router.get("/{material_id}/download")
async def download_material(
    material_id: str,
    request: Request,
    token: Optional[str] = Query(None, description="Signed download link token"),
    current_account: Optional[Account] = Depends(get_current_account_optional),
    store: MaterialStore = Depends(get_material_store),
    accounts: CredentialStore = Depends(get_credential_store),
    audit_store: AuditLogStore = Depends(get_audit_store)
):
    """
    Download the material file.

    Accepts either a signed link from a delivery message or a bearer token
    of an admin, the owning teacher or a student the material is visible to.
    """
    material = _get_material_or_404(store, material_id)

    if token:
        payload = decode_download_token(token, material_id)
        if payload is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Download link is invalid or has expired"
            )
        downloader = accounts.get(payload.get("student"))
        actor_id = payload.get("student")
        actor_name = downloader.full_name if downloader else "Unknown"
    elif current_account is not None:
        _check_can_view(current_account, material)
        actor_id = current_account.id
        actor_name = current_account.full_name
    else:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    content_b64 = store.get_file(material_id)
    if not content_b64:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File content not available"
        )

    store.increment_download_count(material_id)
    AuditService.record_from_request(
        store=audit_store,
        request=request,
        actor_id=actor_id,
        actor_name=actor_name,
        action=AuditAction.MATERIAL_DOWNLOAD,
        details=f"Downloaded material: {material.title}"
    )

    return Response(
        content=base64.b64decode(content_b64),
        media_type=material.fileType or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{material.fileName}"'}
    )
