"""
CryptoTerminal - REST API

FastAPI application exposing the AI-orchestrated trading analysis.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Form
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cryptoterminal import __version__
from cryptoterminal.config import settings
from cryptoterminal.exceptions import ConfigurationError
from cryptoterminal.logging import setup_logging, get_api_logger
from cryptoterminal.models import AnalyzeResponse, HealthStatus

from agents.orchestrator import AnalysisOrchestrator

logger = get_api_logger()


# =============================================================================
# Application Lifespan
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    setup_logging()
    logger.info("starting_cryptoterminal_api", version=__version__)

    # Sessions are opened per request by the orchestrator
    app.state.orchestrator = AnalysisOrchestrator()
    if not app.state.orchestrator.is_ready:
        logger.warning("api_keys_missing")

    yield

    logger.info("shutting_down_api")


# =============================================================================
# App Configuration
# =============================================================================

app = FastAPI(
    title="CryptoTerminal API",
    description="AI-orchestrated cryptocurrency trading analysis over LunarCrush MCP",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.api.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Dependency Injection
# =============================================================================

def get_orchestrator() -> AnalysisOrchestrator:
    return app.state.orchestrator


def _error_response(status_code: int, message: str) -> JSONResponse:
    body = AnalyzeResponse(success=False, error=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# =============================================================================
# Health Endpoints
# =============================================================================

@app.get("/", tags=["Health"])
async def root():
    """API root endpoint."""
    return {"name": "CryptoTerminal API", "version": __version__}


@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check(
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """Check API health and whether both API keys are configured."""
    return HealthStatus(
        status="healthy" if orchestrator.is_ready else "degraded",
        version=__version__,
        services={
            "lunarcrush": bool(orchestrator.lunarcrush_api_key),
            "gemini": bool(orchestrator.gemini_api_key),
        },
    )


# =============================================================================
# Analysis Endpoints
# =============================================================================

@app.post("/api/analyze", response_model=AnalyzeResponse, tags=["Analysis"])
async def analyze(
    symbol: str | None = Form(default=None),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
):
    """
    Run an AI-orchestrated analysis for a cryptocurrency.

    - **symbol**: Ticker symbol form field (e.g. BTC)

    Gemini chooses which LunarCrush MCP tools to call, the tools run
    concurrently, and Gemini synthesizes a BUY/SELL/HOLD recommendation.
    A HOLD with ``degraded: true`` means the model output was unusable.
    """
    if not symbol or not symbol.strip():
        return _error_response(400, "Symbol is required")

    symbol = symbol.strip().upper()

    try:
        analysis = await orchestrator.analyze(symbol)
    except ConfigurationError as e:
        logger.error("analysis_not_configured", symbol=symbol)
        return _error_response(500, str(e))
    except Exception as e:
        logger.error(
            "analysis_failed",
            symbol=symbol,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error_response(500, str(e) or "Analysis failed")

    logger.info(
        "analysis_served",
        symbol=symbol,
        recommendation=analysis.recommendation.value,
        degraded=analysis.degraded,
    )
    return AnalyzeResponse(success=True, analysis=analysis)


@app.get("/api/analyze", tags=["Analysis"])
async def analyze_usage():
    """The analyze endpoint only accepts POST."""
    return JSONResponse(
        status_code=405,
        content={"message": "Use POST to analyze cryptocurrency"},
    )


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return _error_response(500, "Internal server error")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.reload,
        workers=1 if settings.api.reload else settings.api.workers,
    )
