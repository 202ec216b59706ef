from datetime import datetime
from decimal import Decimal
from fastapi import APIRouter, Query, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import delete, desc, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from models.record import Record as RecordModel
from models.user import User as UserModel
from config.database import AsyncSession, get_async_db
from middlewares.require_access import require_access
from middlewares.verify_token_routes import VerifyTokenRoute

router = APIRouter(route_class=VerifyTokenRoute)


class Record(BaseModel):
    date: datetime | None = Field(default=None)
    km: Decimal = Field(gt=0)
    hours_worked: Decimal = Field(gt=0)
    gross: Decimal = Field(default=Decimal("0"))
    platform_earnings: Decimal = Field(default=Decimal("0"))
    tips: Decimal = Field(default=Decimal("0"))
    fuel: Decimal = Field(default=Decimal("0"))
    food: Decimal = Field(default=Decimal("0"))
    insurance: Decimal = Field(default=Decimal("0"))
    other: Decimal = Field(default=Decimal("0"))
    net: Decimal = Field(default=Decimal("0"))


@router.post("")
async def create_record(
    record: Record,
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        record_data = record.model_dump(exclude_none=True)
        new_record = RecordModel(user_id=user.id, **record_data)
        db.add(new_record)
        await db.commit()
        await db.refresh(new_record)
        return JSONResponse(jsonable_encoder(new_record, exclude={"user"}), status_code=201)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating record for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating record")


@router.get("")
async def list_records(
    offset: int = Query(0, ge=0),
    limit: int = Query(100, gt=0, le=500),
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        total = (await db.execute(
            select(func.count()).select_from(RecordModel).where(RecordModel.user_id == user.id)
        )).scalar()

        records = (await db.execute(
            select(RecordModel)
            .where(RecordModel.user_id == user.id)
            .order_by(desc(RecordModel.date), desc(RecordModel.id))
            .offset(offset)
            .limit(limit)
        )).scalars().all()

        return JSONResponse(
            {
                "total": total,
                "records": [jsonable_encoder(record, exclude={"user"}) for record in records],
            },
            status_code=200,
        )
    except SQLAlchemyError as e:
        logger.error(f"Error listing records for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Error listing records")


@router.delete("/{record_id}")
async def delete_record(
    record_id: int,
    user: UserModel = Depends(require_access),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        result = await db.execute(
            delete(RecordModel).where(RecordModel.id == record_id, RecordModel.user_id == user.id)
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error deleting record {record_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting record")

    if not result.rowcount:
        return JSONResponse({"message": "Record not found"}, status_code=404)
    return JSONResponse({"message": "Record deleted"}, status_code=200)
