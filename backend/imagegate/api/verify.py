"""Token verification API routes."""
from fastapi import APIRouter, Request

from imagegate.api.deps import Db, RequestToken
from imagegate.schemas.user import VerifyRequest, VerifyResponse
from imagegate.services.auth_service import AuthService
from imagegate.utils.rate_limiter import rate_limit_default

router = APIRouter()


@router.get("", response_model=VerifyResponse)
@rate_limit_default()
async def verify_token(request: Request, db: Db, token: RequestToken):
    """Check a token sent in the Authorization header and return the balance."""
    user = await AuthService(db).verify(token)
    return VerifyResponse(user_id=user.id, credits_balance=user.credits_balance)


@router.post("", response_model=VerifyResponse)
@rate_limit_default()
async def verify_token_body(
    request: Request,
    body: VerifyRequest,
    db: Db,
    token: RequestToken,
):
    """Same as GET, but the token may come in the JSON body."""
    user = await AuthService(db).verify(body.token if body.token is not None else token)
    return VerifyResponse(user_id=user.id, credits_balance=user.credits_balance)
