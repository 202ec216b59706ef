from fastapi import Depends, HTTPException
from config.database import AsyncSession, get_async_db
from middlewares.verify_token_routes import get_current_user_id
from models.user import User as UserModel
from services.subscriptions import has_access


async def require_access(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
) -> UserModel:
    """Resolve the calling user and reject it when it has neither a subscription nor a running trial."""
    user = await db.get(UserModel, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.block:
        raise HTTPException(status_code=403, detail="User is blocked")
    if not await has_access(db, user):
        raise HTTPException(status_code=403, detail="Subscription required")
    return user
