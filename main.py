"""Credit Metering Service API main application module."""

from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from creditmeter.config import env
from creditmeter.config.credits import CreditConfig
from creditmeter.exceptions import CreditMeterError
from creditmeter.logger import get_logger
from creditmeter.routers import credits_router_v1
from creditmeter.store.base import LedgerStore
from creditmeter.store.sql import SQLAlchemyLedgerStore

logger = get_logger("creditmeter.api")


def _service_version() -> str:
  try:
    return pkg_version("creditmeter-service")
  except PackageNotFoundError:
    return "0.0.0"


def create_app(store: LedgerStore | None = None) -> FastAPI:
  """
  Create the FastAPI app and include the routers.

  Args:
      store: Ledger store to serve from. When omitted, a SQL store is built
          from ``DATABASE_URL`` at startup and disposed at shutdown.

  Returns:
      FastAPI: The configured FastAPI application.
  """
  app = FastAPI(
    title="Credit Metering API",
    version=_service_version(),
    description="Credit reservation and usage accounting for billable AI operations.",
    openapi_url="/openapi.json",
  )

  # Initialize app state
  app.state.current_time = datetime.now(timezone.utc)
  app.state.ledger_store = store
  app.state.owns_ledger_store = store is None

  @app.on_event("startup")
  async def startup_event():
    """Connect the ledger store on startup."""
    logger.info("Starting Credit Metering API...")

    if app.state.ledger_store is None:
      ledger_store = SQLAlchemyLedgerStore.from_url(env.DATABASE_URL)
      try:
        await ledger_store.create_tables()
      except CreditMeterError as e:
        logger.error(f"Ledger store initialization failed: {e}")
        if env.is_production():
          # In production, fail fast on an unreachable store
          raise
        logger.warning("Continuing without a verified ledger store (non-production)")
      app.state.ledger_store = ledger_store

    logger.info("Credit Metering API startup complete")

  @app.on_event("shutdown")
  async def shutdown_event():
    """Clean up resources on shutdown."""
    logger.info("Shutting down Credit Metering API...")
    if app.state.owns_ledger_store and app.state.ledger_store is not None:
      await app.state.ledger_store.close()
      app.state.ledger_store = None
    logger.info("Credit Metering API shutdown complete")

  @app.exception_handler(CreditMeterError)
  async def credit_error_handler(request: Request, exc: CreditMeterError) -> JSONResponse:
    """Credit errors that escape a router surface as a generic retry message."""
    logger.error(f"Unhandled credit error: {exc}", extra={"metadata": exc.details})
    message, action = CreditConfig.get_user_message(exc.error_code)
    return JSONResponse(
      status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
      content={
        "detail": {"detail": message, "code": exc.error_code.value, "action": action}
      },
    )

  @app.exception_handler(Exception)
  async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler returning a generic error.

    Internal exception details are logged server-side only.
    """
    logger.error("Unhandled exception", exc_info=exc)
    return JSONResponse(
      status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
      content={"detail": "Internal server error"},
    )

  @app.get("/v1/status", tags=["Status"], include_in_schema=False)
  async def service_status():
    return {
      "status": "healthy",
      "timestamp": datetime.now(timezone.utc).isoformat(),
      "environment": env.ENVIRONMENT,
    }

  app.include_router(credits_router_v1)

  return app


app = create_app()

if __name__ == "__main__":
  import uvicorn

  uvicorn.run("main:app", host=env.HOST, port=env.PORT, reload=env.is_development())
