from fastapi import APIRouter, Depends
from app.api.v1.endpoints import login, system, users
from app.api.deps import get_current_user, get_current_admin

router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "Welcome to AlpusLinks API V1"}


# Public routes
router.include_router(login.router, tags=["login"])

# Authenticated routes
router.include_router(
    users.router,
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(get_current_user)]
)
router.include_router(
    system.router,
    prefix="/system",
    tags=["system"],
    dependencies=[Depends(get_current_admin)]
)
