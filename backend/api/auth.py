"""
Login and logout

/connect takes HTTP Basic credentials and returns a session token;
/disconnect revokes the token sent in X-Token.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from constants import HTTPStatus
from dependencies import get_session_store, get_user_service, get_token
from exceptions import UnauthorizedError, SessionNotFoundError
from schemas import TokenResponse
from services.session_store import SessionStore
from services.user_service import UserService
from utils.error_handlers import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

basic_auth = HTTPBasic(auto_error=False)


@router.get("/connect", response_model=TokenResponse)
@handle_api_errors("Connect")
def connect(
    credentials: Optional[HTTPBasicCredentials] = Depends(basic_auth),
    users: UserService = Depends(get_user_service),
    sessions: SessionStore = Depends(get_session_store)
):
    """
    Exchange email/password for a token valid 24 hours

    Raises:
        HTTPException: 401 on missing or wrong credentials
    """
    if credentials is None:
        raise UnauthorizedError()
    user = users.authenticate(credentials.username, credentials.password)
    return TokenResponse(token=sessions.issue(user.id))


@router.get("/disconnect", status_code=HTTPStatus.NO_CONTENT)
@handle_api_errors("Disconnect")
def disconnect(
    token: Optional[str] = Depends(get_token),
    sessions: SessionStore = Depends(get_session_store)
):
    """
    Revoke the caller's token

    Raises:
        HTTPException: 401 if the token is missing, expired or already revoked
    """
    try:
        sessions.revoke(token)
    except SessionNotFoundError:
        raise HTTPException(status_code=HTTPStatus.UNAUTHORIZED, detail="Unauthorized")
    return Response(status_code=HTTPStatus.NO_CONTENT)
