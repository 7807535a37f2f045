"""
Fashion Product Scraper - FastAPI Application
Main entry point with REST API endpoints.
"""
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from fashion_scraper import __version__
from fashion_scraper.config import config
from fashion_scraper.errors import InvalidInputError
from fashion_scraper.layers.orchestrator import Orchestrator, build_strategies
from fashion_scraper.utils.logger import get_logger, set_trace_id


# Initialize FastAPI app
app = FastAPI(
    title="Fashion Product Scraper",
    description="Extracts structured product data from fashion e-commerce product pages",
    version=__version__,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = get_logger("main")


def get_orchestrator() -> Orchestrator:
    """A fresh orchestrator per request; nothing is shared between scrapes."""
    return Orchestrator(build_strategies(config))


# Request/Response models
class ScrapeRequest(BaseModel):
    """Request model for a product scrape."""
    url: str
    timeout_seconds: Optional[float] = None


class ScrapeResponse(BaseModel):
    """Response model for a product scrape."""
    url: str
    outcome: str
    record: Optional[Dict[str, Any]]
    source_url: Optional[str]
    field_sources: Dict[str, str]
    missing_fields: List[str]
    attempts: List[Dict[str, Any]]
    elapsed_ms: int
    trace_id: str


# API Routes
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.post("/api/scrape", response_model=ScrapeResponse)
async def scrape_product(
    request: ScrapeRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """
    Scrape one product page.

    A page no strategy could read is still a 200 with outcome "failure"
    and a null record; only bad input is a 400.
    """
    trace_id = set_trace_id()

    logger.info(
        "scrape_request",
        url=request.url,
        timeout_seconds=request.timeout_seconds,
        trace_id=trace_id,
    )

    try:
        result = await orchestrator.run(request.url, request.timeout_seconds)
    except InvalidInputError as e:
        logger.warning("scrape_invalid_input", error=str(e), url=request.url)
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("scrape_error", error=str(e), url=request.url)
        raise HTTPException(status_code=500, detail=str(e))

    return ScrapeResponse(
        url=result.url,
        outcome=result.outcome.value,
        record=result.record.to_dict() if result.record else None,
        source_url=result.source_url,
        field_sources=result.field_sources,
        missing_fields=result.missing_fields,
        attempts=result.attempts,
        elapsed_ms=result.elapsed_ms,
        trace_id=trace_id,
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.HOST, port=config.PORT)
