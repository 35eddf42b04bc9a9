"""
Health and counters
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from database import get_db
from dependencies import get_blob_storage, get_user_service, get_file_catalog
from schemas import StatusResponse, StatsResponse
from services.file_catalog import FileCatalog
from services.interfaces import IBlobStorage
from services.user_service import UserService
from utils.error_handlers import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status", response_model=StatusResponse)
def get_status(
    db: Session = Depends(get_db),
    storage: IBlobStorage = Depends(get_blob_storage)
):
    """Report whether the database and blob storage are reachable"""
    try:
        db.execute(text("SELECT 1"))
        db_alive = True
    except SQLAlchemyError as e:
        logger.warning(f"Status check: database unreachable: {e}")
        db_alive = False
    return StatusResponse(db=db_alive, storage=storage.is_available())


@router.get("/stats", response_model=StatsResponse)
@handle_api_errors("Get stats")
def get_stats(
    users: UserService = Depends(get_user_service),
    catalog: FileCatalog = Depends(get_file_catalog)
):
    return StatsResponse(users=users.count_users(), files=catalog.count_files())
