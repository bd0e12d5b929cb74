from fastapi import APIRouter

from app.core.config.methodology import METHODOLOGY_VERSION, SCHEMA_VERSION
from app.reference import get_reference_data

router = APIRouter()


@router.get("/health", summary="Health Check", description="Check the health status of the application.")
async def health_check():
    reference = get_reference_data()
    return {
        "status": "healthy",
        "schema_version": SCHEMA_VERSION,
        "methodology_version": METHODOLOGY_VERSION,
        "tables": {
            "roles": reference.roles.version,
            "geo": reference.geo.version,
            "cost_of_living": reference.col.version,
            "fx": reference.fx.version,
        },
    }
