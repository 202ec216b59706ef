import random
import string
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from jwt import encode, decode, exceptions
from fastapi import HTTPException
from passlib.context import CryptContext
from config.settings import ALGORITHM, JWT_SECRET_KEY, ACCESS_TOKEN_EXPIRE_MINUTES

CENTS = Decimal("0.01")

password_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def get_hashed_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_pass: str) -> bool:
    return password_context.verify(password, hashed_pass)


def utcnow() -> datetime:
    """Naive UTC now, matching what the DateTime columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def write_token(data: dict) -> str:
    """Generate an access token that expires after ACCESS_TOKEN_EXPIRE_MINUTES."""
    exp = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    token = encode(payload={**data, "exp": exp}, key=JWT_SECRET_KEY, algorithm=ALGORITHM)
    return token


def validate_token(token: str, output: bool = False):
    try:
        decoded_token = decode(token, key=JWT_SECRET_KEY, algorithms=[ALGORITHM])
        if output:
            return decoded_token
        return None
    except exceptions.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except exceptions.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def generate_affiliate_code(username: str, length: int = 4) -> str:
    # Username prefix plus a random suffix of uppercase letters and digits
    characters = string.ascii_uppercase + string.digits
    suffix = ''.join(random.choice(characters) for _ in range(length))
    return f"{username[:4].upper()}{suffix}"


def to_money(value) -> Decimal:
    """Quantize any numeric value to cents, rounding half up."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
