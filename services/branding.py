from __future__ import annotations

from typing import Optional

from pydantic import field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from models import AppConfig
from schemas.application import CamelModel

DEFAULT_CONFIG_ID = "defaultConfig"


class BrandingConfig(CamelModel):
    company_name: str = "Driver Recruitment"
    logo_url: str = "/logo.png"
    primary_color: str = "#0ea5e9"
    secondary_color: str = "#0c4a6e"
    accent_color: str = "#06b6d4"
    background_color: str = "#0f172a"
    text_color: str = "#ffffff"
    tagline: Optional[str] = ""

    @field_validator("company_name", "logo_url", "primary_color")
    @classmethod
    def _required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Company name, logo URL, and primary color are required")
        return v.strip()


async def get_branding(session: AsyncSession, config_id: str = DEFAULT_CONFIG_ID) -> BrandingConfig:
    row = await session.get(AppConfig, config_id)
    if row is None or not row.branding:
        return BrandingConfig()
    return BrandingConfig(**row.branding)


async def save_branding(
    session: AsyncSession, branding: BrandingConfig, config_id: str = DEFAULT_CONFIG_ID
) -> BrandingConfig:
    row = await session.get(AppConfig, config_id)
    data = branding.model_dump()
    if row is None:
        session.add(AppConfig(id=config_id, branding=data))
    else:
        row.branding = data
    await session.flush()
    return branding
