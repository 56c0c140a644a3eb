from fastapi import APIRouter, Depends

from app.api.deps import get_current_user
from app.models.user import User, UserRead

router = APIRouter()


@router.get("/me", response_model=UserRead)
def read_user_me(current_user: User = Depends(get_current_user)):
    """
    Get current user.
    """
    return current_user
