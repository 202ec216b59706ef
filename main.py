import re
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from config.database import AsyncSessionLocal, AsyncSession, get_async_db, create_tables
from config.logging import setup_logging
from config.settings import MODE, origins
from routers import affiliates, fines, maintenance, payments, records
from services import affiliates as affiliate_service
from services import subscriptions
from services.errors import ConflictError, ServiceError
from utils import get_hashed_password, verify_password, write_token

# Register every mapper before the first query
from models.user import User as UserModel
from models.affiliates import Affiliates  # noqa: F401
from models.commission import Commission  # noqa: F401
from models.withdraw import Withdraw  # noqa: F401
from models.record import Record  # noqa: F401
from models.maintenance import Maintenance  # noqa: F401
from models.fine import Fine  # noqa: F401

PHONE_PATTERN = re.compile(r"^[0-9]{10,15}$")

scheduler = AsyncIOScheduler()


class User(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1)


class RegisterCredentials(User):
    phone: str
    affiliate_code: str | None = Field(default=None)


async def expire_trials_job():
    async with AsyncSessionLocal() as db:
        try:
            await subscriptions.expire_trials(db)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Trial sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    setup_logging()
    await create_tables()
    # Deactivate expired trials every 30 minutes
    scheduler.add_job(expire_trials_job, "interval", minutes=30, id="expire_trials", replace_existing=True)
    scheduler.start()
    logger.info(f"Backend started in {MODE} mode")
    yield
    scheduler.shutdown(wait=False)


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse({"message": exc.message}, status_code=exc.status_code)


app.include_router(
   payments.router,
   prefix="/api",
   tags=["payments"]
)

app.include_router(
   payments.webhook_router,
   prefix="/api",
   tags=["payments"]
)

app.include_router(
   records.router,
   prefix="/api/records",
   tags=["records"]
)

app.include_router(
   maintenance.router,
   prefix="/api/maintenance",
   tags=["maintenance"]
)

app.include_router(
   fines.router,
   prefix="/api/fines",
   tags=["fines"]
)

app.include_router(
   affiliates.router,
   prefix="/api/affiliate",
   tags=["affiliates"]
)


@app.post("/api/register")
async def register_user(userData: RegisterCredentials = Body(), db: AsyncSession = Depends(get_async_db)):
    if not PHONE_PATTERN.match(userData.phone):
        raise HTTPException(status_code=400, detail="Phone must contain only digits (10-15)")

    try:
        # Check if the username or phone is already registered
        result = await db.execute(
            select(UserModel).where(or_(UserModel.username == userData.username, UserModel.phone == userData.phone))
        )
        existing = result.scalars().first()
        if existing:
            if existing.username == userData.username:
                raise HTTPException(status_code=400, detail="User already exists")
            raise HTTPException(status_code=400, detail="Phone already registered")

        # Keep the referral code only when an affiliate owns it
        referred_by = None
        if userData.affiliate_code and userData.affiliate_code.strip():
            code = userData.affiliate_code.strip().upper()
            if await affiliate_service.get_by_code(db, code) is not None:
                referred_by = code
            else:
                logger.info(f"Ignoring unknown referral code {code}")

        new_user = UserModel(
            username=userData.username,
            password=get_hashed_password(userData.password),
            phone=userData.phone,
            is_paid=False,
            referred_by=referred_by,
        )
        subscriptions.start_trial(new_user)
        db.add(new_user)
        await db.commit()
        await db.refresh(new_user)
        user_id, username = new_user.id, new_user.username

        affiliate_code = None
        try:
            affiliate = await affiliate_service.create_affiliate(db, new_user)
            affiliate_code = affiliate.affiliate_code
        except ConflictError:
            # Created lazily on the first stats request instead
            logger.warning(f"No affiliate profile for new user {user_id}")

        if referred_by:
            # The account is already saved; a lost referral race only skips the count
            try:
                await affiliate_service.register_referral(db, referred_by)
            except (ServiceError, SQLAlchemyError) as e:
                await db.rollback()
                logger.warning(f"Referral {referred_by} not counted for new user {user_id}: {e}")

        logger.info(f"User {username} registered (referred by {referred_by})")
        return JSONResponse(
            {"message": "User created, 48 hour free trial started", "affiliate_code": affiliate_code},
            status_code=201,
        )
    except (HTTPException, ServiceError):
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Registration error: {e}")
        raise HTTPException(status_code=500, detail="Error registering user")


@app.post("/api/login")
async def login_user(user: User, db: AsyncSession = Depends(get_async_db)):
    try:
        result = await db.execute(select(UserModel).where(UserModel.username == user.username))
        user_record = result.scalars().first()
        if not user_record or not verify_password(user.password, user_record.password):
            return JSONResponse({"message": "Invalid username or password"}, status_code=401)
        if user_record.block:
            return JSONResponse({"message": "User suspended"}, status_code=403)

        access_token = write_token({"user_id": user_record.id, "username": user_record.username})
        access = await subscriptions.has_access(db, user_record)
        trial = subscriptions.trial_info(user_record)

        if user_record.is_paid:
            message = "Login successful"
        elif trial:
            message = f"Trial active, {trial['hours_left']} hours left"
        else:
            message = "Subscription required to access the system"

        return JSONResponse(
            {
                "access_token": access_token,
                "is_paid": bool(user_record.is_paid),
                "has_access": access,
                "trial_info": jsonable_encoder(trial),
                "message": message,
            },
            status_code=200,
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Error logging in")


@app.get('/api/health')
async def health():
    return {'status': 'healthy'}
