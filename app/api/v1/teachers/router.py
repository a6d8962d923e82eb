from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_store
from app.auth.security import verify_password
from app.core.exceptions import ServiceError
from app.dispensations.store import DispensationStore

from .schemas import TeacherResponse

router = APIRouter(prefix="/api/teachers", tags=["teachers"])


@router.get("", response_model=List[TeacherResponse])
async def list_teachers(
    username: Optional[str] = None,
    password: Optional[str] = None,
    store: DispensationStore = Depends(get_store),
) -> List[TeacherResponse]:
    """List teachers. With username and password, returns the matching teacher or an empty list (login check)."""
    try:
        teachers = await store.list_teachers()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    if username and password:
        teachers = [
            t for t in teachers
            if t.username == username and verify_password(password, t.password_hash)
        ]
    return [TeacherResponse.model_validate(t) for t in teachers]
