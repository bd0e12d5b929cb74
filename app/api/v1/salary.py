from __future__ import annotations

from fastapi import APIRouter, Query, Request, status
from fastapi.responses import JSONResponse

from app.core.rate_limit import rate_limit
from app.schemas.salary import (
    CostOfLivingResponse,
    NetIncomeRequest,
    NetIncomeResponse,
    SalaryIntelligenceEnvelope,
    SalaryIntelligenceResult,
)
from app.services.salary_intelligence import generate_salary_intelligence, get_default_engine

router = APIRouter()

# SalaryRequestError propagates to the handler registered in app.main (400 {"error": ...}).


@router.post("/salary-intelligence", response_model=SalaryIntelligenceResult)
@rate_limit()
def salary_intelligence(request: Request, payload: SalaryIntelligenceEnvelope):
    _ = request
    result = generate_salary_intelligence(payload.to_request(), payload.computation_budget)
    if not result.schema_valid:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=result.model_dump(mode="json"))
    return result


@router.post("/salary/net-income", response_model=NetIncomeResponse)
@rate_limit()
def salary_net_income(request: Request, payload: NetIncomeRequest):
    _ = request
    return get_default_engine().net_income(payload.gross_annual, payload.currency, payload.location)


@router.get("/cost-of-living", response_model=CostOfLivingResponse)
@rate_limit()
def cost_of_living(
    request: Request,
    location: str | None = Query(default=None, max_length=200),
    currency: str | None = Query(default=None, min_length=3, max_length=3),
    household_size: int = Query(default=1, ge=1, le=10),
):
    _ = request
    return get_default_engine().cost_of_living_for(location, currency, household_size)
