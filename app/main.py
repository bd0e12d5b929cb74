import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from app.api.v1.health import router as health_router
from app.api.v1.salary import router as salary_router
from app.core.cors import add_cors
from app.core.rate_limit import limiter
from app.core.config import settings
from dotenv import load_dotenv
from app.core.lifespan import lifespan
from app.services.errors import SalaryRequestError

load_dotenv()
logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Salary Intelligence API", version="0.1.0", lifespan=lifespan)

add_cors(app)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(SalaryRequestError)
async def salary_request_error_handler(request: Request, exc: SalaryRequestError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        message = "Invalid request"
    else:
        first = errors[0]
        if first.get("type") == "json_invalid":
            message = "Malformed JSON body"
        else:
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body") or "body"
            message = f"Invalid request field '{field}': {first.get('msg')}"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(salary_router, prefix="/v1", tags=["Salary Intelligence"])
