"""Application factory for creating FastAPI instances."""

from datetime import datetime
from typing import Optional
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .config import AppConfig, StorageBackend, get_config, validate_config
from .core.logging import setup_logging, get_logger
from .core.error_recovery import HealthChecker
from .core.middleware import ErrorHandlingMiddleware, PerformanceMonitoringMiddleware
from .core.generation_client import GenerationClient, GenerationProvider, GeminiProvider
from .core.graph_manager import GraphManager
from .core.execution_engine import WorkflowExecutor
from .core.tool_registry import ToolRegistry
from .core.state_manager import StateManager
from .storage.database import create_tables, get_database_engine, get_session_factory
from .storage.project_store import InMemoryProjectStore, ProjectStore, SqlProjectStore
from .tools.builtin_tools import register_builtin_tools
from .api.endpoints import router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.project_store: Optional[ProjectStore] = None
        self.generation_client: Optional[GenerationClient] = None
        self.tool_registry: Optional[ToolRegistry] = None
        self.executor: Optional[WorkflowExecutor] = None
        self.state_manager: Optional[StateManager] = None
        self.graph_manager: Optional[GraphManager] = None
        self.health_checker: HealthChecker = HealthChecker()
        self.logger = None


def initialize_storage(config: AppConfig, logger) -> ProjectStore:
    """Create the configured project store."""
    if config.storage_backend == StorageBackend.MEMORY:
        logger.info("Using in-memory project store")
        return InMemoryProjectStore()

    try:
        engine = get_database_engine(config.database_url, echo=config.database_echo)
        create_tables(engine)
        logger.info("Database tables created")
        return SqlProjectStore(get_session_factory(engine))
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


def initialize_core_components(
    config: AppConfig,
    logger,
    provider: Optional[GenerationProvider] = None
) -> tuple:
    """Initialize core application components."""
    try:
        if provider is None:
            provider = GeminiProvider(config.gemini_api_key, base_url=config.gemini_api_base)
            if not provider.is_configured:
                logger.warning("No Gemini API key configured; agent nodes will fail")

        generation_client = GenerationClient(
            provider,
            retry_base_delay=config.retry_base_delay_ms / 1000,
            retry_max_delay=config.retry_max_delay_ms / 1000
        )
        tool_registry = ToolRegistry()
        executor = WorkflowExecutor(
            generation_client,
            tool_registry=tool_registry,
            default_model=config.default_model,
            default_timeout_ms=config.request_timeout_ms,
            default_max_retries=config.max_retries,
            node_pacing_ms=config.node_pacing_ms,
            extraction_var=config.extraction_var,
            planning_var=config.planning_var
        )
        state_manager = StateManager(executor)
        graph_manager = GraphManager()

        logger.info("Core components initialized")

        return generation_client, tool_registry, executor, state_manager, graph_manager

    except Exception as e:
        logger.error(f"Core components initialization failed: {e}")
        raise


def register_default_tools(tool_registry: ToolRegistry, logger) -> None:
    """Register the built-in tools."""
    try:
        register_builtin_tools(tool_registry)
        for tool in tool_registry.list_tools():
            logger.info(f"Registered tool: {tool['name']}")
        logger.info("Default tools registration completed")
    except Exception as e:
        logger.error(f"Failed to register default tools: {e}")
        raise


def setup_health_checks(state: ApplicationState, logger) -> None:
    """Set up health check functions."""

    def check_storage():
        projects = state.project_store.load()
        return f"{len(projects)} saved projects"

    def check_generation():
        provider = state.generation_client.provider
        if isinstance(provider, GeminiProvider) and not provider.is_configured:
            raise RuntimeError("Gemini API key is not configured")
        return f"Provider {type(provider).__name__} ready"

    def check_runs():
        active = state.state_manager.get_active_runs()
        return f"{len(active)} active runs"

    def check_tool_registry():
        tools = state.tool_registry.list_tools()
        if not tools:
            raise RuntimeError("No tools registered")
        return f"{len(tools)} tools registered"

    state.health_checker.register_check("storage", check_storage, timeout=5.0)
    state.health_checker.register_check("generation", check_generation, timeout=2.0)
    state.health_checker.register_check("runs", check_runs, timeout=2.0)
    state.health_checker.register_check("tool_registry", check_tool_registry, timeout=2.0)

    logger.info("Health checks registered")


async def graceful_shutdown(state: ApplicationState, logger) -> None:
    """Handle graceful shutdown of application components."""
    logger.info(f"Shutting down {state.config.app_name}")

    try:
        await state.state_manager.shutdown()
        logger.info("Active runs cancelled")
    except Exception as e:
        logger.error(f"Error cancelling active runs: {str(e)}")

    try:
        await state.generation_client.aclose()
        logger.info("Generation client closed")
    except Exception as e:
        logger.error(f"Error closing generation client: {str(e)}")


def create_lifespan_handler(
    config: AppConfig,
    state: ApplicationState,
    provider: Optional[GenerationProvider] = None,
    project_store: Optional[ProjectStore] = None
):
    """Create application lifespan handler."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger = setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
            max_size=config.log_max_size,
            backup_count=config.log_backup_count
        )

        logger.info(f"Starting {config.app_name} v{config.app_version}")

        try:
            store = project_store or initialize_storage(config, logger)
            components = initialize_core_components(config, logger, provider)
            generation_client, tool_registry, executor, state_manager, graph_manager = components

            state.config = config
            state.project_store = store
            state.generation_client = generation_client
            state.tool_registry = tool_registry
            state.executor = executor
            state.state_manager = state_manager
            state.graph_manager = graph_manager
            state.logger = logger

            register_default_tools(tool_registry, logger)

            init_dependencies(
                graph_manager=graph_manager,
                state_manager=state_manager,
                tool_registry=tool_registry,
                project_store=store,
                default_model=config.default_model,
                run_retention_hours=config.run_retention_hours
            )

            setup_health_checks(state, logger)

            logger.info("Application startup completed successfully")

        except Exception as e:
            logger.error(f"Application startup failed: {e}")
            raise

        yield

        # Shutdown
        try:
            await graceful_shutdown(state, logger)
        except Exception as e:
            logger.error(f"Error during graceful shutdown: {e}")

    return lifespan


def create_app(
    config: Optional[AppConfig] = None,
    provider: Optional[GenerationProvider] = None,
    project_store: Optional[ProjectStore] = None
) -> FastAPI:
    """
    Create and configure FastAPI application instance.

    Args:
        config: Settings; loaded from the environment when omitted
        provider: Generation provider; a GeminiProvider is built when omitted
        project_store: Project store; built from ``config.storage_backend`` when omitted

    Returns:
        FastAPI: Application with ``app.state.roadmapflow`` holding the components
    """
    if config is None:
        config = get_config()

    validate_config(config)

    state = ApplicationState()

    app = FastAPI(
        title=config.app_name,
        description="Runs roadmap-generation workflows: model calls chained through a shared variable context",
        version=config.app_version,
        debug=config.debug,
        lifespan=create_lifespan_handler(config, state, provider, project_store)
    )
    app.state.roadmapflow = state

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=config.cors_methods,
            allow_headers=["*"],
        )

    if config.enable_performance_monitoring:
        app.add_middleware(ErrorHandlingMiddleware)
        app.add_middleware(PerformanceMonitoringMiddleware, slow_request_threshold=config.slow_request_threshold)

    app.include_router(router)

    add_health_endpoints(app, config, state)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig, state: ApplicationState) -> None:
    """Add health check endpoints to the application."""
    service = config.app_name.lower().replace(" ", "-")

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": service, "version": config.app_version}

    @app.get("/health/detailed")
    async def detailed_health_check():
        """Detailed health check endpoint with component status."""
        try:
            results = await state.health_checker.run_all_checks()
            status_code = 200 if results["overall_status"] == "healthy" else 503
            return JSONResponse(
                status_code=status_code,
                content={"service": service, "version": config.app_version, **results}
            )
        except Exception as e:
            logger = get_logger(__name__)
            logger.error(f"Health check failed: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "service": service,
                    "overall_status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat()
                }
            )
