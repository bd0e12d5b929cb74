from contextlib import asynccontextmanager
import logging

from app.core.config.methodology import get_methodology
from app.services.salary_intelligence import get_default_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    # Config and reference tables fail fast here rather than on the first request.
    methodology = get_methodology()
    get_default_engine()
    logger.info("salary_engine_ready methodology=%s", methodology.version)
    yield
