from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from models.maintenance import Maintenance as MaintenanceModel
from models.user import User as UserModel
from config.database import AsyncSession, get_async_db
from middlewares.require_access import require_access
from middlewares.verify_token_routes import VerifyTokenRoute

router = APIRouter(route_class=VerifyTokenRoute)


class Maintenance(BaseModel):
    type: str = Field(min_length=1)
    cost: Decimal = Field(ge=0)
    notes: str | None = Field(default="")
    date: datetime | None = Field(default=None)


@router.post("")
async def create_maintenance(
    maintenance: Maintenance,
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        new_maintenance = MaintenanceModel(user_id=user.id, **maintenance.model_dump(exclude_none=True))
        db.add(new_maintenance)
        await db.commit()
        await db.refresh(new_maintenance)
        return JSONResponse(jsonable_encoder(new_maintenance, exclude={"user"}), status_code=201)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating maintenance for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating maintenance")


@router.get("")
async def list_maintenance(
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        items = (await db.execute(
            select(MaintenanceModel)
            .where(MaintenanceModel.user_id == user.id)
            .order_by(desc(MaintenanceModel.date), desc(MaintenanceModel.id))
        )).scalars().all()
        return JSONResponse([jsonable_encoder(item, exclude={"user"}) for item in items], status_code=200)
    except SQLAlchemyError as e:
        logger.error(f"Error listing maintenance for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error listing maintenance")
