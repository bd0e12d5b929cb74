from functools import lru_cache

from app.core.config import settings

from .loader import load_reference_data
from .models import ReferenceData
from .provider import CostOfLivingSource, FxRateSource


@lru_cache(maxsize=1)
def get_reference_data() -> ReferenceData:
    return load_reference_data(settings.reference_data_dir)


__all__ = [
    "ReferenceData",
    "FxRateSource",
    "CostOfLivingSource",
    "load_reference_data",
    "get_reference_data",
]
