from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from config.database import AsyncSession, get_async_db
from config.settings import NETWORK_MAX_DEPTH
from middlewares.verify_token_routes import VerifyTokenRoute, get_current_user_id
from services import affiliates as affiliate_service
from services.errors import NotFoundError
from services.network import build_network, empty_network
from services.progress import badge_catalog, compute_progress
from services.pushinpay import PushinPayClient, get_pushinpay

router = APIRouter(route_class=VerifyTokenRoute)


class WithdrawalKey(BaseModel):
    withdrawal_key: str = Field(min_length=1)


class CustomLink(BaseModel):
    custom_slug: str = Field(min_length=1, max_length=50)


async def _require_profile(db: AsyncSession, user_id: int):
    affiliate = await affiliate_service.get_by_user(db, user_id)
    if affiliate is None:
        raise NotFoundError("Affiliate profile not found")
    return affiliate


@router.get("/stats")
async def get_stats(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_async_db)):
    try:
        stats = await affiliate_service.affiliate_stats(db, user_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error loading affiliate stats of user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading affiliate stats")
    return JSONResponse(jsonable_encoder(stats), status_code=200)


@router.post("/withdrawal-key")
async def update_withdrawal_key(
    payload: WithdrawalKey,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        affiliate = await affiliate_service.set_withdrawal_key(db, user_id, payload.withdrawal_key)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error saving PIX key of user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error saving PIX key")
    return JSONResponse(
        {"message": "PIX key saved", "withdrawal_key": affiliate.withdrawal_key},
        status_code=200,
    )


@router.post("/withdraw")
async def withdraw(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
    pushinpay: PushinPayClient = Depends(get_pushinpay),
):
    try:
        payout = await affiliate_service.withdraw_earnings(db, user_id, pushinpay)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error processing withdrawal of user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error processing withdrawal")
    return JSONResponse(
        {
            "message": "Withdrawal sent",
            "amount": float(payout.amount),
            "pix_key": payout.pix_key,
            "transaction_id": payout.transaction_id,
        },
        status_code=200,
    )


@router.get("/progress")
async def get_progress(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_async_db)):
    affiliate = await _require_profile(db, user_id)
    try:
        progress = await compute_progress(db, affiliate.id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error computing progress of affiliate {affiliate.id}: {e}")
        raise HTTPException(status_code=500, detail="Error loading progress")
    return JSONResponse(jsonable_encoder(progress), status_code=200)


@router.get("/badges")
async def get_badges(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_async_db)):
    affiliate = await _require_profile(db, user_id)
    return JSONResponse(badge_catalog(affiliate.badges), status_code=200)


@router.post("/custom-link")
async def create_custom_link(
    payload: CustomLink,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    try:
        affiliate = await affiliate_service.set_custom_slug(db, user_id, payload.custom_slug)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error saving custom link of user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error saving custom link")
    return JSONResponse(
        {
            "message": "Custom link created",
            "custom_slug": affiliate.custom_slug,
            "custom_link": affiliate_service.custom_link(affiliate),
        },
        status_code=200,
    )


@router.get("/sharing-links")
async def get_sharing_links(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_async_db)):
    affiliate = await affiliate_service.get_or_create_affiliate(db, user_id)
    return JSONResponse(
        {
            "affiliate_code": affiliate.affiliate_code,
            "links": affiliate_service.sharing_links(affiliate),
        },
        status_code=200,
    )


@router.get("/network")
async def get_network(
    max_depth: int = Query(NETWORK_MAX_DEPTH, ge=0, le=NETWORK_MAX_DEPTH),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_async_db),
):
    affiliate = await affiliate_service.get_by_user(db, user_id)
    if affiliate is None:
        return JSONResponse(empty_network(), status_code=200)

    try:
        network = await build_network(db, affiliate.affiliate_code, max_depth=max_depth)
    except SQLAlchemyError as e:
        logger.error(f"Error building network of {affiliate.affiliate_code}: {e}")
        raise HTTPException(status_code=500, detail="Error loading network")
    return JSONResponse(jsonable_encoder(network), status_code=200)
