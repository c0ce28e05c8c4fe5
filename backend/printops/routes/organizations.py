from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..auth import OrganizationContext, get_current_user, get_organization_context
from ..database import get_db
from ..rbac import ensure_not_last_admin, ensure_org_admin, get_member

router = APIRouter(prefix="/api/organizations", tags=["organizations"])


@router.post("", response_model=schemas.OrganizationOut, status_code=201)
def create_organization(
    payload: schemas.OrganizationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if user.organization_id:
        raise HTTPException(status_code=400, detail="You already belong to an organization")
    org = models.Organization(name=payload.name, created_by=user.id, created_at=datetime.now(timezone.utc))
    db.add(org)
    db.flush()
    # the creator administers the new organization
    user.organization_id = org.id
    user.role = "admin"
    audit.log_action(db, user.id, "create_organization", "organization", org.id, commit=False)
    db.commit()
    db.refresh(org)
    return org


@router.get("/me", response_model=schemas.OrganizationOut)
def read_organization(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    org = db.get(models.Organization, context.organization_id)
    if not org:
        raise HTTPException(status_code=404)
    return org


@router.get("/me/members", response_model=list[schemas.UserOut])
def list_members(
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    return (
        db.query(models.User)
        .filter(models.User.organization_id == context.organization_id)
        .order_by(models.User.created_at)
        .all()
    )


@router.post("/me/members", response_model=schemas.UserOut, status_code=201)
def add_member(
    payload: schemas.OrganizationMemberAdd,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    member = db.query(models.User).filter(models.User.email == payload.email).first()
    if not member:
        raise HTTPException(status_code=404, detail="User not found")
    if member.organization_id and member.organization_id != context.organization_id:
        raise HTTPException(status_code=409, detail="User belongs to another organization")
    member.organization_id = context.organization_id
    member.role = payload.role
    audit.log_action(
        db, context.user_id, "add_member", "user", member.id, {"role": payload.role}, commit=False
    )
    db.commit()
    db.refresh(member)
    return member


@router.put("/me/members/{user_id}", response_model=schemas.UserOut)
def update_member_role(
    user_id: UUID,
    payload: schemas.OrganizationRoleUpdate,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    member = get_member(db, context, user_id)
    if payload.role != "admin":
        ensure_not_last_admin(db, context, member)
    member.role = payload.role
    db.commit()
    db.refresh(member)
    return member


@router.delete("/me/members/{user_id}", status_code=204)
def remove_member(
    user_id: UUID,
    db: Session = Depends(get_db),
    context: OrganizationContext = Depends(get_organization_context),
):
    ensure_org_admin(context)
    member = get_member(db, context, user_id)
    ensure_not_last_admin(db, context, member)
    member.organization_id = None
    member.role = "member"
    audit.log_action(db, context.user_id, "remove_member", "user", member.id, commit=False)
    db.commit()
    return Response(status_code=204)
