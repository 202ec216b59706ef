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
from models.fine import Fine as FineModel, FineStatusEnum
from models.user import User as UserModel
from config.database import AsyncSession, get_async_db
from middlewares.require_access import require_access
from middlewares.verify_token_routes import VerifyTokenRoute

router = APIRouter(route_class=VerifyTokenRoute)


class Fine(BaseModel):
    type: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)
    location: str | None = Field(default="")
    status: FineStatusEnum = Field(default=FineStatusEnum.pending)
    date: datetime | None = Field(default=None)


@router.post("")
async def create_fine(
    fine: Fine,
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        new_fine = FineModel(user_id=user.id, **fine.model_dump(exclude_none=True))
        db.add(new_fine)
        await db.commit()
        await db.refresh(new_fine)
        return JSONResponse(jsonable_encoder(new_fine, exclude={"user"}), status_code=201)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating fine for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating fine")


@router.get("")
async def list_fines(
    status: FineStatusEnum | None = None,
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        stmt = select(FineModel).where(FineModel.user_id == user.id)
        if status is not None:
            stmt = stmt.where(FineModel.status == status)
        fines = (await db.execute(
            stmt.order_by(desc(FineModel.date), desc(FineModel.id))
        )).scalars().all()
        return JSONResponse([jsonable_encoder(fine, exclude={"user"}) for fine in fines], status_code=200)
    except SQLAlchemyError as e:
        logger.error(f"Error listing fines for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error listing fines")
