from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.branding import get_branding

router = APIRouter(prefix="/api/branding", tags=["branding"])


@router.get("")
async def read_branding(db: AsyncSession = Depends(get_db)):
    branding = await get_branding(db)
    return branding.model_dump(by_alias=True)
