"""
Agentic Workflow Engine Service

A FastAPI service that executes user-defined workflow graphs:
- Trigger, agent, condition, transform and output nodes
- LLM-backed agents via any OpenAI-compatible endpoint
- Durable execution records in PostgreSQL
- Live execution state in Redis with a TTL
- Cooperative cancellation and per-run timeouts
- Webhook notifications on completion and failure
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import asyncpg
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .api.routes import router
from .config import Config, config
from .coordinator import ExecutionCoordinator
from .manager import WorkflowManager
from .persistence.base import ExecutionRepository
from .persistence.repository import WorkflowRepository
from .persistence.state_cache import RedisStateCache
from .persistence.store import ExecutionStore
from .tools.agents import LLMAgentExecutor
from .tools.llm_client import LLMClient
from .tools.webhooks import WebhookDispatcher

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@dataclass
class EngineServices:
    """Collaborators the HTTP layer runs against."""
    repository: ExecutionRepository
    manager: WorkflowManager
    closers: List[Callable[[], Awaitable[Any]]] = field(default_factory=list)


def setup_tracing(app_config: Config):
    """Export spans to the configured OTLP collector."""
    resource = Resource.create({"service.name": app_config.service_name})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=app_config.otel_endpoint))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)


async def build_services(app_config: Config) -> EngineServices:
    """Connect to Postgres and Redis and wire the execution stack."""
    db_pool = await asyncpg.create_pool(app_config.database_url, min_size=2, max_size=10)
    logger.info("Database connection established")

    repository = WorkflowRepository(db_pool)
    await repository.init_tables()

    cache = RedisStateCache.from_url(app_config.redis_url)
    if await cache.ping():
        logger.info("Redis connection established")
    else:
        logger.warning(f"Redis at {app_config.redis_url} did not answer ping")

    llm_client = LLMClient(
        base_url=app_config.llm_base_url,
        api_key=app_config.llm_api_key,
        timeout=app_config.agent_timeout_seconds,
    )
    webhook_dispatcher = WebhookDispatcher(repository, timeout=app_config.webhook_timeout_seconds)

    store = ExecutionStore(repository, cache, state_ttl_seconds=app_config.execution_state_ttl_seconds)
    coordinator = ExecutionCoordinator(
        store,
        agent_executor=LLMAgentExecutor(
            llm_client,
            default_model=app_config.default_model,
            timeout_seconds=app_config.agent_timeout_seconds,
        ),
        webhook_dispatcher=webhook_dispatcher,
        max_steps=app_config.max_workflow_steps,
        default_timeout_seconds=app_config.default_timeout_seconds,
    )

    return EngineServices(
        repository=repository,
        manager=WorkflowManager(repository, store, coordinator),
        closers=[llm_client.close, webhook_dispatcher.close, cache.close, db_pool.close],
    )


def create_app(app_config: Optional[Config] = None, services: Optional[EngineServices] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_config: Settings; defaults to the environment-driven config
        services: Pre-built collaborators. When omitted the lifespan
            connects to Postgres, Redis and the LLM endpoint.
    """
    app_config = app_config or config

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        engine = services
        if engine is None:
            setup_tracing(app_config)
            engine = await build_services(app_config)

        app.state.repository = engine.repository
        app.state.manager = engine.manager

        logger.info("Workflow engine service started")
        yield

        # Cleanup
        await engine.manager.shutdown()
        for close in engine.closers:
            try:
                await close()
            except Exception as e:
                logger.warning(f"Error during shutdown: {e}")

        logger.info("Workflow engine service stopped")

    app = FastAPI(
        title="Agentic Workflow Engine",
        description="Execution of user-defined agent workflow graphs",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Instrument with OpenTelemetry
    FastAPIInstrumentor.instrument_app(app)

    # Include API routes
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)
