from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from models.user import User as UserModel
from config.database import AsyncSession, get_async_db
from middlewares.verify_token_routes import VerifyTokenRoute, get_current_user_id
from services import subscriptions
from services.pushinpay import PushinPayClient, get_pushinpay

router = APIRouter(route_class=VerifyTokenRoute)

# The provider calls this one without a token
webhook_router = APIRouter()


@router.post("/create-subscription")
async def create_subscription(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    pushinpay: PushinPayClient = Depends(get_pushinpay),
):
    try:
        payment = await subscriptions.create_subscription(db, user_id, pushinpay)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating subscription for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating PIX payment")

    return JSONResponse(
        {"message": "PIX payment created", **jsonable_encoder(payment)},
        status_code=200,
    )


@router.get("/check-subscription")
async def check_subscription(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        user = await db.get(UserModel, user_id)
        if not user:
            return JSONResponse({"message": "User not found"}, status_code=404)

        access = await subscriptions.has_access(db, user)
        return JSONResponse(
            jsonable_encoder({
                "is_paid": bool(user.is_paid),
                "has_access": access,
                "trial_info": subscriptions.trial_info(user),
            }),
            status_code=200,
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error checking subscription of user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error checking subscription")


@webhook_router.post("/webhook/pushinpay")
async def pushinpay_webhook(event: dict = Body(...), db: AsyncSession = Depends(get_async_db)):
    logger.info(f"PushinPay webhook received: {event}")
    try:
        await subscriptions.handle_payment_event(db, event)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"PushinPay webhook error: {e}")
        return JSONResponse({"message": "error"}, status_code=500)

    return JSONResponse({"message": "OK"}, status_code=200)
