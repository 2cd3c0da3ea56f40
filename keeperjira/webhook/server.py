"""FastAPI server for Keeper webhook ingestion."""

import logging
import os
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from ..common import log_server_message, setup_logging
from ..config import AppConfig
from ..errors import PayloadTooLarge
from ..jira_client import JiraClient
from ..keeper import ApprovalDetailFetcher, AsyncCommandClient
from ..storage import create_store
from .pipeline import ConfiguredAssigneeResolver, WebhookIngestionPipeline, WebhookRequest

logger = logging.getLogger(__name__)


def load_config() -> AppConfig:
    """Config file named by ``KEEPERJIRA_CONFIG`` when present, else defaults plus env."""
    path = os.getenv("KEEPERJIRA_CONFIG")
    if path and os.path.exists(path):
        return AppConfig.load(path)
    return AppConfig.from_env()


def create_app(
    config: Optional[AppConfig] = None,
    pipeline: Optional[WebhookIngestionPipeline] = None,
) -> FastAPI:
    """Build the webhook app.

    When ``pipeline`` is given it is used as is and nothing is built or closed
    on startup/shutdown.
    """
    config = config or load_config()
    setup_logging(config.log_dir)

    app = FastAPI(title="Keeper Jira Webhook", version="1.0.0")
    app.state.config = config
    app.state.pipeline = pipeline
    app.state.resources = []

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        log_server_message("Server starting up")
        if app.state.pipeline is None:
            store = create_store(config.storage, config.retry.storage)
            jira = JiraClient(config.jira, policy=config.retry.jira)
            app.state.resources = [store, jira]

            detail_fetcher = None
            if config.keeper.api_key:
                keeper = AsyncCommandClient.from_config(config.keeper)
                app.state.resources.append(keeper)
                detail_fetcher = ApprovalDetailFetcher(keeper)
            else:
                log_server_message("KEEPER_API_KEY not set; tickets will not be enriched")

            app.state.pipeline = WebhookIngestionPipeline(
                store,
                jira,
                config.webhook,
                detail_fetcher=detail_fetcher,
                assignee_resolver=ConfiguredAssigneeResolver(
                    config.webhook.default_assignee_account_id
                ),
            )
        log_server_message(f"Webhook endpoint: {config.webhook.endpoint}")
        log_server_message("Health check: /health")
        log_server_message("Server ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        log_server_message("Server shutting down")
        for resource in app.state.resources:
            if hasattr(resource, "aclose"):
                await resource.aclose()
            else:
                await resource.close()
        app.state.resources = []

    @app.get("/health")
    async def health_check() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": "keeperjira"}

    @app.post(config.webhook.endpoint)
    async def keeper_webhook(request: Request) -> JSONResponse:
        """Hand the raw delivery to the ingestion pipeline."""
        limit = config.webhook.max_payload_bytes
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            log_server_message(f"413 Payload Too Large: Content-Length {declared}")
            return JSONResponse(
                status_code=PayloadTooLarge.status_code,
                content={
                    "success": False,
                    "error": f"Payload exceeds {limit} bytes",
                    "code": PayloadTooLarge.code,
                },
            )

        body = await request.body()
        result = await app.state.pipeline.handle(
            WebhookRequest(body=body, headers=dict(request.headers))
        )
        return JSONResponse(
            status_code=result.status_code, content=result.body, headers=result.headers
        )

    @app.exception_handler(404)
    async def not_found_handler(request: Request, exc: HTTPException):
        """Handle 404 errors."""
        log_server_message(f"404 Not Found: {request.url}")
        return JSONResponse(
            status_code=404,
            content={"error": "Not found", "path": str(request.url)}
        )

    @app.exception_handler(500)
    async def internal_error_handler(request: Request, exc: Exception):
        """Handle 500 errors."""
        log_server_message(f"500 Internal Server Error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"}
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "keeperjira.webhook.server:app",
        host=app.state.config.webhook.host,
        port=app.state.config.webhook.port,
        reload=False,
        log_level="info"
    )
