"""
Ticketdesk - FastAPI Backend
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ticketdesk import __version__
from ticketdesk.config import Settings, get_settings
from ticketdesk.middleware.logging_middleware import LoggingMiddleware
from ticketdesk.repositories import InMemoryTicketRepository, SupabaseTicketRepository, TicketStore
from ticketdesk.routes import health, interactions, tickets
from ticketdesk.services.channel_provisioner import DiscordChannelProvisioner
from ticketdesk.services.context import ServiceContext
from ticketdesk.services.discord_client import DiscordRestClient
from ticketdesk.services.notifier import DiscordNotifier
from ticketdesk.services.ticket_service import TicketService
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


def build_store(settings: Settings) -> TicketStore:
    if settings.store_backend == "memory":
        logger.warning("Using the in-memory ticket store; records are lost on restart")
        return InMemoryTicketRepository()
    return SupabaseTicketRepository()


def build_context(settings: Settings) -> ServiceContext:
    """Wire the record store and the Discord collaborators together"""
    client = DiscordRestClient(
        token=settings.discord_bot_token,
        base_url=settings.discord_api_base,
        timeout=settings.discord_timeout,
        max_retries=settings.discord_max_retries,
    )
    return ServiceContext(
        store=build_store(settings),
        provisioner=DiscordChannelProvisioner(client),
        notifier=DiscordNotifier(client),
        # A bot user shares its application's id
        bot_user_id=settings.discord_application_id,
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if not hasattr(app.state, "ticket_service"):
        app.state.ticket_service = TicketService(build_context(settings))
    logger.info(f"Ticketdesk started ({settings.fastapi_env}, store: {settings.store_backend})")

    yield

    ctx = app.state.ticket_service.ctx
    for deadline in list(ctx.removals.values()):
        await deadline.wait()
    logger.info("Ticketdesk stopped")


app = FastAPI(
    title="Ticketdesk",
    description="Support ticket workflow for Discord servers",
    version=__version__,
    lifespan=lifespan
)

# Request/response logging
app.add_middleware(LoggingMiddleware)

app.include_router(interactions.router)
app.include_router(tickets.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"message": "Ticketdesk API", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.fastapi_host, port=settings.fastapi_port)
