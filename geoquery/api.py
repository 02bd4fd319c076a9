from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError, field_validator

from geoquery import __version__
from geoquery.config import (
    CORS_ORIGINS,
    CORS_ALLOW_CREDENTIALS,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_HEADERS,
    CORS_MAX_AGE,
    ENABLE_PII_REDACTION,
    LOG_LEVEL,
    MAX_QUERY_LENGTH,
)
from geoquery.logging_config import setup_logging, get_logger
from geoquery.orchestration.orchestrator import (
    Orchestrator,
    QueryContext,
    QueryPreferences,
    get_orchestrator,
)

setup_logging(log_level=LOG_LEVEL, enable_pii_redaction=ENABLE_PII_REDACTION)
logger = get_logger("geoquery.api")


class QueryRequest(BaseModel):
    query: str = Field(..., description="Natural-language location question")
    session_id: Optional[str] = Field(None, description="Caller session identifier")
    preferences: Optional[QueryPreferences] = None
    context: Optional[QueryContext] = None

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Query cannot be empty")
        if len(v) > MAX_QUERY_LENGTH * 4:
            raise ValueError("Query too long")
        return v


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting GeoQuery API...")
    yield
    logger.info("Shutdown complete")


app = FastAPI(
    title="GeoQuery API",
    description="Location-intelligence query routing, phased execution and result synthesis",
    version=__version__,
    lifespan=lifespan
)

logger.info(f"🔒 CORS: allowing origins {CORS_ORIGINS}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ALLOW_CREDENTIALS,
    allow_methods=CORS_ALLOW_METHODS,
    allow_headers=CORS_ALLOW_HEADERS,
    max_age=CORS_MAX_AGE,
)


@app.post("/api/query", response_model=Dict[str, Any])
async def handle_query(
    http_request: Request,
    orchestrator: Orchestrator = Depends(get_orchestrator)
) -> Dict[str, Any]:
    """Answer a location question; failures are returned as success=false bodies."""
    try:
        request_data = await http_request.json()
        request = QueryRequest(**request_data)
    except ValidationError as e:
        error_msg = "Invalid request format"
        if e.errors():
            msg = e.errors()[0].get("msg", "")
            if "Query cannot be empty" in msg:
                error_msg = "Query cannot be empty"
            elif "Query too long" in msg:
                error_msg = "Query exceeds maximum length"
        logger.warning(f"Validation failed: {error_msg}")
        return {"success": False, "message": error_msg}
    except ValueError:
        logger.warning("Request body is not valid JSON")
        return {"success": False, "message": "Invalid request format"}
    except TypeError:
        return {"success": False, "message": "Invalid request format"}

    response = await orchestrator.handle(
        request.query,
        session_id=request.session_id,
        preferences=request.preferences,
        context=request.context,
    )
    return response.model_dump(mode="json")


@app.get("/api/cache/stats")
async def cache_statistics(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    return {"success": True, "data": orchestrator.get_cache_statistics()}


@app.delete("/api/cache")
async def clear_cache(orchestrator: Orchestrator = Depends(get_orchestrator)) -> Dict[str, Any]:
    result = orchestrator.clear_all_caches()
    return {"success": True, "message": f"Cleared {result['cleared']} cache entries", **result}


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "healthy",
        "service": "geoquery",
        "version": __version__,
        "timestamp": datetime.now().isoformat(),
    }
