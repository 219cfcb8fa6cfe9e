from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker
import logging
import uvicorn

from src.agents.header_validator import HeaderFormValidator
from src.agents.message_normalizer import MessageNormalizer
from src.core.config import Settings, get_settings
from src.core.database import create_db_engine, create_session_factory, init_db
from src.core.gemini import GeminiClient
from src.core.rate_limit import CooldownTracker
from src.core.state_manager import ConversationStateManager
from src.routes.reports import router as reports_router
from src.routes.webhook import router as webhook_router
from src.services.case_aggregation import CaseService
from src.services.chat_service import ChatService
from src.services.customers_query_flow import CustomersQueryFlow
from src.services.event_repository import LeadEventRepository
from src.services.ingestion_service import IngestionService
from src.services.message_router import MessageRouter
from src.services.report_query_flow import ReportQueryFlow
from src.services.sales_entry_flow import SalesEntryFlow
from src.services.update_merger import EnrichmentMerger

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def configure_app_state(
    app: FastAPI,
    settings: Settings,
    session_factory: sessionmaker,
    gemini_client: Optional[GeminiClient] = None,
) -> None:
    """Builds every component once and hangs it on app.state for the routes."""
    if gemini_client is None:
        gemini_client = GeminiClient(
            api_key=settings.GOOGLE_GEMINI_API_KEY,
            model_name=settings.GEMINI_MODEL,
            default_model=settings.GEMINI_DEFAULT_MODEL,
            timeout_seconds=settings.AI_TIMEOUT_SECONDS,
        )

    repository = LeadEventRepository(session_factory)
    state_manager = ConversationStateManager(ttl_seconds=settings.FLOW_TTL_SECONDS)
    case_service = CaseService(repository, timezone=settings.TIMEZONE)

    entry_flow = SalesEntryFlow(HeaderFormValidator(gemini_client), repository, state_manager)
    customers_flow = CustomersQueryFlow(
        case_service,
        state_manager,
        CooldownTracker("customers", settings.CUSTOMERS_COOLDOWN_SECONDS),
        timezone=settings.TIMEZONE,
    )
    report_flow = ReportQueryFlow(
        case_service,
        state_manager,
        CooldownTracker("report", settings.REPORT_COOLDOWN_SECONDS),
        timezone=settings.TIMEZONE,
        max_days=settings.REPORT_MAX_DAYS,
    )
    ingestion = IngestionService(
        MessageNormalizer(gemini_client, timezone=settings.TIMEZONE),
        EnrichmentMerger(repository),
        repository,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.case_service = case_service
    app.state.chat_service = ChatService(settings)
    app.state.message_router = MessageRouter(
        state_manager, entry_flow, customers_flow, report_flow, ingestion
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.critical(f"❌ Missing required configuration, aborting startup: {e}")
        raise

    engine = create_db_engine(settings.DATABASE_URL)
    logger.info("Initializing database tables...")
    init_db(engine)
    logger.info("Database tables created successfully.")

    configure_app_state(app, settings, create_session_factory(engine))
    logger.info(f"🚀 Sales audit bot ready (AI {'enabled' if settings.ai_enabled else 'disabled'})")

    yield

    engine.dispose()


app = FastAPI(title="Sales Audit Bot", lifespan=lifespan)

# Include routers
app.include_router(webhook_router)
app.include_router(reports_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("main:app", host=settings.API_HOST, port=settings.API_PORT, reload=True)
