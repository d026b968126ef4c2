# gymcheckin/routers/users.py
from fastapi import APIRouter, Depends
from gymcheckin.auth import get_current_user
from gymcheckin import schemas, models

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    """Get (and register on first call) the user behind the bearer token"""
    return {
        "id": current_user.id,
        "line_user_id": current_user.external_identity_id,
        "display_name": current_user.display_name,
        "picture_url": current_user.picture_url,
    }
