from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.routing import APIRoute
from loguru import logger
from services.errors import ServiceError
from utils import validate_token


class VerifyTokenRoute(APIRoute):
    def get_route_handler(self):
        original_route = super().get_route_handler()

        async def verify_token_middleware(request: Request):
            try:
                # Retrieve the Authorization header
                auth_header = request.headers.get("Authorization")
                if not auth_header:
                    raise HTTPException(status_code=401, detail="Authorization header missing")

                parts = auth_header.split(" ")
                if len(parts) != 2 or parts[0] != "Bearer":
                    raise HTTPException(status_code=401, detail="Invalid Authorization header format")

                token = parts[1]
                if not token:
                    raise HTTPException(status_code=401, detail="Token missing in Authorization header")

                # Raises 401 on an expired or invalid token
                payload = validate_token(token, output=True)
                try:
                    request.state.user_id = int(payload["user_id"])
                except (KeyError, TypeError, ValueError):
                    raise HTTPException(status_code=401, detail="Malformed token payload")

                return await original_route(request)
            except (HTTPException, RequestValidationError, ServiceError):
                # Propagate known errors as they are
                raise
            except Exception as e:
                logger.exception(f"Unexpected error on {request.url.path}")
                raise HTTPException(status_code=500, detail=f"Unexpected server error: {str(e)}") from e

        return verify_token_middleware


def get_current_user_id(request: Request) -> int:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
