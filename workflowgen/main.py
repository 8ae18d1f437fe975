"""
Workflow Generation Engine - FastAPI Application
Turns orchestration plans into validated n8n workflows
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from workflowgen import __version__
from workflowgen.api.routes import health
from workflowgen.api.v1 import costs, workflows
from workflowgen.config import Settings, get_settings
from workflowgen.database import create_cost_log_engine, init_db, make_session_factory
from workflowgen.integrations import default_providers
from workflowgen.integrations.base import ProviderAdapter
from workflowgen.knowledge.workflow_examples import KnowledgeBase
from workflowgen.services.cost_log import CostLogSink, InMemoryCostLog, SqlCostLog
from workflowgen.services.cost_monitor import CostMonitor
from workflowgen.services.model_router import ModelRouter
from workflowgen.services.pattern_analyzer import PatternAnalyzer
from workflowgen.services.workflow_generator import WorkflowGenerator

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    providers: Optional[list[ProviderAdapter]] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Wire the generation pipeline onto app.state."""
        logger.info(f"Starting {settings.app_name}...")

        engine = None
        sink: CostLogSink
        if settings.cost_log_backend == "database":
            engine = create_cost_log_engine(settings.cost_log_database_url)
            init_db(engine)
            sink = SqlCostLog(make_session_factory(engine))
            logger.info("Cost log database initialized")
        else:
            sink = InMemoryCostLog(max_entries=settings.cost_log_max_entries)

        if settings.knowledge_corpus_path is not None:
            knowledge_base = KnowledgeBase.from_json(settings.knowledge_corpus_path)
            logger.info(f"Loaded knowledge corpus from {settings.knowledge_corpus_path}")
        else:
            knowledge_base = KnowledgeBase.default()

        monitor = CostMonitor(sink)
        router = ModelRouter(monitor, providers if providers is not None else default_providers())
        analyzer = PatternAnalyzer(
            knowledge_base,
            limit=settings.similar_workflow_limit,
            min_score=settings.similarity_threshold,
        )

        app.state.settings = settings
        app.state.cost_log_engine = engine
        app.state.cost_monitor = monitor
        app.state.router = router
        app.state.generator = WorkflowGenerator(settings, router, analyzer=analyzer)

        logger.info(f"API running on {settings.app_env} environment (budget policy: {settings.budget_policy})")
        yield
        if engine is not None:
            engine.dispose()
        logger.info(f"Shutting down {settings.app_name}...")

    app = FastAPI(
        title=settings.app_name,
        description="Generate and validate n8n workflows from orchestration plans",
        version=__version__,
        lifespan=lifespan,
    )

    # Respect forwarded proto/host so redirects don't downgrade to http.
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root() -> dict:
        return {
            "name": settings.app_name,
            "environment": settings.app_env,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    prefix = settings.api_v1_prefix
    app.include_router(health.router, prefix=prefix, tags=["Health"])
    app.include_router(workflows.router, prefix=f"{prefix}/workflows", tags=["Workflows"])
    app.include_router(costs.router, prefix=f"{prefix}/costs", tags=["Costs"])
    return app


configure_logging(get_settings().log_level)
app = create_app()
