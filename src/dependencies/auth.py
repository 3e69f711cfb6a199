from typing import Annotated

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.api.auth.models import DecodedToken
from src.dependencies.firebase import auth
from src.shared.exceptions import UnauthorizedException

security = HTTPBearer(auto_error=False)


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> DecodedToken:
    if not credentials or not credentials.credentials:
        raise UnauthorizedException(detail="Authentication token is missing")

    token = credentials.credentials
    try:
        decoded_token_dict = auth.verify_id_token(token)
        return DecodedToken(**decoded_token_dict)
    except Exception as e:
        raise UnauthorizedException(detail=f"Invalid authentication credentials: {e}")


async def get_current_user(
    decoded_token: Annotated[DecodedToken, Depends(verify_token)],
):
    return decoded_token
