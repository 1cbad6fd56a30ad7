"""Public application intake for prospective investors and partners."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from sahem_invest.domain.enums import ApplicationKind
from sahem_invest.domain.schemas import (
    ApplicationResponse,
    InvestorApplicationCreate,
    PartnerApplicationCreate,
)
from sahem_invest.infra.database import get_db
from sahem_invest.services.onboarding_service import submit_application

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["applications"])


@router.post("/investor", response_model=ApplicationResponse, status_code=201)
async def apply_as_investor(data: InvestorApplicationCreate, db: AsyncSession = Depends(get_db)):
    application = await submit_application(db, ApplicationKind.INVESTOR, data.model_dump())
    return ApplicationResponse.model_validate(application)


@router.post("/partner", response_model=ApplicationResponse, status_code=201)
async def apply_as_partner(data: PartnerApplicationCreate, db: AsyncSession = Depends(get_db)):
    application = await submit_application(db, ApplicationKind.PARTNER, data.model_dump())
    return ApplicationResponse.model_validate(application)
