"""
Assignments API Router.
"""

from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.database import get_db
from atelier.services.reconciler import AssignmentReconciler

router = APIRouter()


class AssignmentResponse(BaseModel):
    id: str
    article_id: str
    order_id: int
    line_item_id: int
    tricoteuse_id: str
    tricoteuse_name: str
    status: str
    urgent: bool
    assigned_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AssignmentRequest(BaseModel):
    article_id: Union[str, int]
    tricoteuse_id: str
    tricoteuse_name: str
    status: Optional[str] = "en_cours"
    urgent: bool = False


class AssignmentUpdate(BaseModel):
    tricoteuse_id: Optional[str] = None
    tricoteuse_name: Optional[str] = None
    status: Optional[str] = None
    urgent: Optional[bool] = None


@router.get("", response_model=List[AssignmentResponse])
async def list_assignments(db: AsyncSession = Depends(get_db)):
    assignments = await AssignmentReconciler(db).list_assignments()
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.post("/reconcile")
async def reconcile_assignments(db: AsyncSession = Depends(get_db)):
    """Repair drift between assignments and production statuses."""
    return await AssignmentReconciler(db).reconcile()


@router.get("/{article_id}", response_model=AssignmentResponse)
async def get_assignment(article_id: str, db: AsyncSession = Depends(get_db)):
    assignment = await AssignmentReconciler(db).get_assignment(article_id)
    return AssignmentResponse.model_validate(assignment)


@router.post("", response_model=AssignmentResponse)
async def assign_article(body: AssignmentRequest, db: AsyncSession = Depends(get_db)):
    """Create or update an assignment; the item's status follows."""
    assignment = await AssignmentReconciler(db).assign(
        body.article_id,
        body.tricoteuse_id,
        body.tricoteuse_name,
        status=body.status,
        urgent=body.urgent,
    )
    return AssignmentResponse.model_validate(assignment)


@router.put("/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(assignment_id: str, body: AssignmentUpdate, db: AsyncSession = Depends(get_db)):
    """Edit worker, status or urgency; the item's status and assignee follow."""
    assignment = await AssignmentReconciler(db).update_assignment(
        assignment_id, **body.model_dump(exclude_unset=True)
    )
    return AssignmentResponse.model_validate(assignment)


@router.delete("/{identifier}")
async def unassign_article(identifier: str, db: AsyncSession = Depends(get_db)):
    """Remove by assignment id or article id; the item goes back to a_faire."""
    deleted = await AssignmentReconciler(db).unassign(identifier)
    return {"success": True, "deleted": deleted}
