from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.database import get_db
from ..core.auth import require_professor
from ..utils.calculations import calculate_dashboard
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/analytics/dashboard")
async def get_dashboard(db: AsyncSession = Depends(get_db), account_id: int = Depends(require_professor)):
    """
    Aggregate evaluation statistics across all courses
    """
    try:
        logger.info(f"Dashboard requested by account {account_id}")
        return await calculate_dashboard(db)
    except Exception as e:
        logger.error(f"Error getting dashboard analytics: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch analytics")
