from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import OrganizationContext, get_organization_context
from ..database import get_db

router = APIRouter(prefix="/api/materials", tags=["materials"])


def _get_material(db: Session, context: OrganizationContext, material_id: UUID) -> models.Material:
    material = (
        db.query(models.Material)
        .filter(models.Material.id == material_id, models.Material.organization_id == context.organization_id)
        .first()
    )
    if not material:
        raise HTTPException(status_code=404, detail="Material not found")
    return material


def _ensure_unique_name(db: Session, context: OrganizationContext, name: str, exclude: UUID | None = None):
    query = db.query(models.Material).filter(
        models.Material.organization_id == context.organization_id,
        models.Material.name == name,
    )
    if exclude is not None:
        query = query.filter(models.Material.id != exclude)
    if query.first():
        raise HTTPException(status_code=409, detail=f"Material {name!r} already exists")


@router.post("", response_model=schemas.MaterialOut, status_code=201)
def create_material(
    payload: schemas.MaterialCreate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    _ensure_unique_name(db, context, payload.name)
    now = datetime.now(timezone.utc)
    material = models.Material(
        organization_id=context.organization_id,
        created_at=now,
        updated_at=now,
        **payload.model_dump(),
    )
    db.add(material)
    db.commit()
    db.refresh(material)
    return material


@router.get("", response_model=list[schemas.MaterialOut])
def list_materials(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return (
        db.query(models.Material)
        .filter(models.Material.organization_id == context.organization_id)
        .order_by(models.Material.name)
        .all()
    )


@router.get("/{material_id}", response_model=schemas.MaterialOut)
def get_material(
    material_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return _get_material(db, context, material_id)


@router.put("/{material_id}", response_model=schemas.MaterialOut)
def update_material(
    material_id: UUID,
    payload: schemas.MaterialUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    material = _get_material(db, context, material_id)
    data = payload.model_dump(exclude_unset=True)
    if data.get("name") and data["name"] != material.name:
        _ensure_unique_name(db, context, data["name"], exclude=material.id)
    for key, value in data.items():
        setattr(material, key, value)
    db.commit()
    db.refresh(material)
    return material


@router.delete("/{material_id}", status_code=204)
def delete_material(
    material_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    material = _get_material(db, context, material_id)
    db.query(models.Task).filter(models.Task.material_id == material.id).update(
        {models.Task.material_id: None}, synchronize_session=False
    )
    db.delete(material)
    db.commit()
    return Response(status_code=204)
