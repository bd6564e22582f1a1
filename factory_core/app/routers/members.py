from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import schemas
from ..db import get_db
from ..models import Member, MemberStatus, MemberRole
from ..repository import Repository

router = APIRouter(prefix="/members", tags=["Members"])


@router.get("", response_model=List[schemas.MemberOut])
def list_members(
    status: Optional[MemberStatus] = None,
    role: Optional[MemberRole] = None,
    db: Session = Depends(get_db),
):
    return Repository(db, Member).list(order_by=Member.name, status=status, role=role)


@router.post("", response_model=schemas.MemberOut, status_code=201)
def add_member(data: schemas.MemberCreate, db: Session = Depends(get_db)):
    fields = data.model_dump()
    fields["joining_date"] = fields["joining_date"] or date.today()
    return Repository(db, Member).create(**fields)


@router.get("/{member_id}", response_model=schemas.MemberOut)
def get_member(member_id: int, db: Session = Depends(get_db)):
    return Repository(db, Member).get(member_id)


@router.patch("/{member_id}", response_model=schemas.MemberOut)
def update_member(member_id: int, data: schemas.MemberUpdate, db: Session = Depends(get_db)):
    return Repository(db, Member).update(member_id, **data.model_dump(exclude_unset=True))


@router.delete("/{member_id}")
def remove_member(member_id: int, db: Session = Depends(get_db)):
    Repository(db, Member).delete(member_id)
    return {"success": True, "message": "Member removed"}
