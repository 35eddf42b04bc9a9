from fastapi import APIRouter, Depends
from constants import HTTPStatus
from dependencies import get_user_service, get_current_user_id
from schemas import UserCreate, UserResponse
from services.user_service import UserService
from utils.error_handlers import handle_api_errors

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=HTTPStatus.CREATED)
@handle_api_errors("Create user")
def create_user(body: UserCreate, users: UserService = Depends(get_user_service)):
    """
    Register a new user

    Raises:
        HTTPException: 400 "Missing email", "Missing password" or "Already exist"
    """
    user = users.register(body.email, body.password)
    return UserResponse.model_validate(user)


@router.get("/users/me", response_model=UserResponse)
@handle_api_errors("Get current user")
def get_me(
    user_id: str = Depends(get_current_user_id),
    users: UserService = Depends(get_user_service)
):
    return UserResponse.model_validate(users.get(user_id))
