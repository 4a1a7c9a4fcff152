"""
FastAPI Application Entry Point

Bar Queue - drink orders over WhatsApp, SMS and the web menu.
Supports both Mock transports (development) and real providers (production).

Endpoints:
    - GET/POST /webhook: WhatsApp Graph API webhook
    - POST /sms-webhook: Twilio SMS webhook
    - POST /api/orders: Direct order from the web menu
    - POST /api/push/subscribe: Register a web push target
    - GET /queue, POST /clear, /done, /serve/{n}: Bar dashboard (admin)
    - POST /stock, /drinks, DELETE /drinks/{id}: Stock management (admin)
    - POST /admin/reload-drinks, /admin/seed: Catalog management (admin)
    - GET /menu, /events, /ping, /health: Public
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.request_validator import RequestValidator

from barqueue.core.config import get_settings, setup_logging
from barqueue.core.exceptions import BarQueueError
from barqueue.database import get_db
from barqueue.dependencies import (
    AppServices,
    build_services,
    get_ordering,
    get_services,
    require_admin,
)
from barqueue.schemas import (
    ClearResponse,
    DirectOrderCreate,
    DoneRequest,
    DrinkCreate,
    DrinkResponse,
    ErrorResponse,
    HealthResponse,
    OrderResponse,
    PushSubscribe,
    QueueResponse,
    ReloadResponse,
    SeedResponse,
    StockAdjust,
)
from barqueue.services.order_queue.base import SourceChannel
from barqueue.services.ordering import OrderingService
from barqueue.webhooks import parse_sms_form, parse_whatsapp_payload

logger = logging.getLogger(__name__)


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service container (tests); built from settings
            at startup when omitted
    """
    settings = services.settings if services else get_settings()

    # =========================================================================
    # APPLICATION LIFECYCLE
    # =========================================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Manage application startup and shutdown events.
        """
        # Startup
        logger.info("=" * 60)
        logger.info(f"🚀 Starting {settings.app_name}")
        logger.info(f"   Version: {settings.app_version}")
        logger.info(f"   Environment: {settings.env_mode.value}")
        logger.info(f"   Debug: {settings.debug}")
        logger.info("=" * 60)

        if app.state.services is None:
            app.state.services = build_services(settings)
        container: AppServices = app.state.services

        await container.startup()
        logger.info("✅ Database initialized")

        snapshot = container.catalog.snapshot()
        logger.info(f"✅ Drink catalog: {len(snapshot)} drinks")
        logger.info(f"✅ Order queue: {container.queue.backend_name}")
        logger.info(f"✅ Broadcaster: {container.broadcaster.backend_name}")
        for channel, transport in container.dispatcher.messaging.items():
            logger.info(f"✅ {channel} transport: {transport.provider_name}")

        if settings.use_real_services:
            missing = settings.validate_production_config()
            if missing:
                logger.warning(f"⚠️ Missing production config: {missing}")

        if not container.admin_parser.admin_numbers and not container.admin_parser.open_mode:
            logger.warning("⚠️ ADMIN_NUMBERS is empty: nobody can send admin commands")

        logger.info("=" * 60)
        logger.info("✅ Application ready!")
        logger.info("=" * 60)

        yield  # Application runs

        # Shutdown
        logger.info("Shutting down...")
        await container.shutdown()
        logger.info("✅ Cleanup complete")

    # =========================================================================
    # APPLICATION INSTANCE
    # =========================================================================

    app = FastAPI(
        title=settings.app_name,
        description="Drink order intake over WhatsApp, SMS and the web, with a live bar queue.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # ROOT & HEALTH ENDPOINTS
    # =========================================================================

    @app.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        """API root with navigation links."""
        return {
            "message": f"🍸 Welcome to {settings.app_name}",
            "version": settings.app_version,
            "environment": settings.env_mode.value,
            "documentation": "/docs",
            "menu": "/menu",
            "health": "/health",
        }

    @app.get("/ping", response_class=PlainTextResponse, tags=["Health"])
    async def ping() -> str:
        return "✅ Server is alive"

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="System Health Check",
    )
    async def health_check(
        container: AppServices = Depends(get_services),
        db: AsyncSession = Depends(get_db),
    ) -> HealthResponse:
        """Verify all system components are operational."""

        db_status = "healthy"
        try:
            await db.execute(text("SELECT 1"))
        except Exception as e:
            db_status = f"unhealthy: {str(e)}"
            logger.error(f"Database health check failed: {e}")

        queue_status = "healthy"
        try:
            await container.queue.size()
        except Exception as e:
            queue_status = f"unhealthy: {str(e)}"
            logger.error(f"Queue health check failed: {e}")

        transports = {}
        for channel, transport in container.dispatcher.messaging.items():
            try:
                healthy = await transport.health_check()
            except Exception as e:
                logger.error(f"{channel} transport health check failed: {e}")
                healthy = False
            transports[channel] = "healthy" if healthy else "unhealthy"

        overall = "operational" if all(
            s == "healthy" for s in [db_status, queue_status, *transports.values()]
        ) else "degraded"

        return HealthResponse(
            status=overall,
            database=db_status,
            queue=queue_status,
            broadcaster=container.broadcaster.backend_name,
            transports=transports,
            catalog_version=container.catalog.snapshot().version,
            timestamp=datetime.now(),
        )

    # =========================================================================
    # MESSAGING WEBHOOKS
    # =========================================================================

    @app.get("/webhook", tags=["Webhooks"], summary="WhatsApp Verification Handshake")
    async def whatsapp_verify(
        mode: Optional[str] = Query(None, alias="hub.mode"),
        token: Optional[str] = Query(None, alias="hub.verify_token"),
        challenge: Optional[str] = Query(None, alias="hub.challenge"),
    ):
        expected = settings.whatsapp_verify_token
        if mode == "subscribe" and expected and token == expected:
            logger.info("✅ WhatsApp webhook verified")
            return PlainTextResponse(challenge or "")
        logger.warning("WhatsApp webhook verification failed")
        return PlainTextResponse("Forbidden", status_code=403)

    @app.post("/webhook", tags=["Webhooks"], summary="WhatsApp Webhook")
    async def whatsapp_webhook(
        request: Request,
        ordering: OrderingService = Depends(get_ordering),
    ) -> dict[str, Any]:
        """
        Handle incoming WhatsApp messages.

        Always acknowledges with 200 so the Graph API does not redeliver;
        failures are logged for investigation.
        """
        try:
            payload = await request.json()
            message = parse_whatsapp_payload(payload)
            if message is None:
                return {"status": "ignored"}

            result = await ordering.handle_inbound(message)
            return {"status": result.outcome.value}

        except Exception as e:
            logger.exception(f"Error processing WhatsApp webhook: {e}")
            return {"status": "error"}

    @app.post("/sms-webhook", tags=["Webhooks"], summary="Twilio SMS Webhook")
    async def sms_webhook(
        request: Request,
        ordering: OrderingService = Depends(get_ordering),
    ):
        """
        Handle incoming SMS (application/x-www-form-urlencoded ``From``/``Body``).

        Always answers 200 to avoid a provider retry storm, except for a bad
        signature when signature validation is on.
        """
        try:
            form = dict(await request.form())

            if settings.twilio_validate_signature:
                validator = RequestValidator(settings.twilio_auth_token or "")
                signature = request.headers.get("X-Twilio-Signature", "")
                if not validator.validate(str(request.url), form, signature):
                    logger.warning("Rejected SMS webhook with invalid Twilio signature")
                    return PlainTextResponse("Forbidden", status_code=403)

            message = parse_sms_form(form)
            if message is None:
                return PlainTextResponse("", status_code=200)

            await ordering.handle_inbound(message)

        except Exception as e:
            logger.exception(f"Error processing SMS webhook: {e}")

        return PlainTextResponse("", status_code=200)

    # =========================================================================
    # WEB ORDER ENDPOINTS
    # =========================================================================

    @app.post(
        "/api/orders",
        response_model=OrderResponse,
        status_code=201,
        responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
        tags=["Orders"],
        summary="Create Order (Web Menu)",
    )
    async def create_order(
        order_data: DirectOrderCreate,
        ordering: OrderingService = Depends(get_ordering),
    ) -> OrderResponse:
        """Place an order from the web menu; ``client_tag`` enables the ready push."""
        order = await ordering.place_order(
            channel=SourceChannel.WEB,
            customer_ref=order_data.client_tag or "web",
            customer_name=order_data.customer_name or "Guest",
            drink_text=order_data.drink_text,
            canonical_id=order_data.canonical_id,
            client_tag=order_data.client_tag,
        )
        return OrderResponse.from_order(order)

    @app.post("/api/push/subscribe", tags=["Orders"], summary="Register Push Target")
    async def push_subscribe(
        subscription: PushSubscribe,
        container: AppServices = Depends(get_services),
    ) -> dict[str, Any]:
        await container.push_store.register(subscription.client_tag, subscription.player_id)
        return {"success": True}

    @app.get("/menu", response_model=list[DrinkResponse], tags=["Menu"])
    async def menu(container: AppServices = Depends(get_services)) -> list[DrinkResponse]:
        """Drinks with their current stock, by display name."""
        return [DrinkResponse.from_record(r) for r in await container.ledger.list_menu()]

    @app.get("/events", tags=["Live"], summary="Live Updates (Server-Sent Events)")
    async def events(container: AppServices = Depends(get_services)) -> StreamingResponse:
        async def stream() -> AsyncIterator[str]:
            yield ": connected\n\n"
            async for event in container.broadcaster.subscribe():
                yield event.to_sse()

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    # =========================================================================
    # DASHBOARD (ADMIN) ENDPOINTS
    # =========================================================================

    admin = [Depends(require_admin)]

    @app.get("/queue", response_model=QueueResponse, dependencies=admin, tags=["Dashboard"])
    async def get_queue(ordering: OrderingService = Depends(get_ordering)) -> QueueResponse:
        orders = await ordering.list_queue()
        return QueueResponse(
            total=len(orders),
            orders=[OrderResponse.from_order(o) for o in orders],
        )

    @app.post("/clear", response_model=ClearResponse, dependencies=admin, tags=["Dashboard"])
    async def clear_queue(ordering: OrderingService = Depends(get_ordering)) -> ClearResponse:
        return ClearResponse(cleared=await ordering.clear_queue())

    @app.post(
        "/done",
        response_model=OrderResponse,
        responses={404: {"model": ErrorResponse}},
        dependencies=admin,
        tags=["Dashboard"],
    )
    async def mark_done(
        request_data: DoneRequest,
        ordering: OrderingService = Depends(get_ordering),
    ) -> OrderResponse:
        return OrderResponse.from_order(await ordering.serve_by_id(request_data.id))

    @app.post(
        "/serve/{position}",
        response_model=OrderResponse,
        responses={404: {"model": ErrorResponse}},
        dependencies=admin,
        tags=["Dashboard"],
    )
    async def serve_position(
        position: int,
        ordering: OrderingService = Depends(get_ordering),
    ) -> OrderResponse:
        return OrderResponse.from_order(await ordering.serve_by_position(position))

    @app.post("/stock", response_model=DrinkResponse, dependencies=admin, tags=["Stock"])
    async def adjust_stock(
        adjustment: StockAdjust,
        ordering: OrderingService = Depends(get_ordering),
    ) -> DrinkResponse:
        """Set (``absolute``) or change (``delta``, floored at zero) a drink's stock."""
        record = await ordering.adjust_stock(adjustment.id, adjustment.delta, adjustment.absolute)
        return DrinkResponse.from_record(record)

    @app.post(
        "/drinks",
        response_model=DrinkResponse,
        status_code=201,
        responses={409: {"model": ErrorResponse}},
        dependencies=admin,
        tags=["Stock"],
    )
    async def create_drink(
        drink: DrinkCreate,
        ordering: OrderingService = Depends(get_ordering),
    ) -> DrinkResponse:
        record = await ordering.add_drink(
            canonical_id=drink.canonical,
            display_name=drink.display_name,
            initial_stock=drink.stock_count,
            description=drink.description,
            image_url=drink.image_url,
        )
        return DrinkResponse.from_record(record)

    @app.delete("/drinks/{drink_id}", dependencies=admin, tags=["Stock"])
    async def delete_drink(
        drink_id: int,
        ordering: OrderingService = Depends(get_ordering),
    ) -> dict[str, Any]:
        await ordering.delete_drink(drink_id)
        return {"success": True}

    @app.post("/admin/reload-drinks", response_model=ReloadResponse, dependencies=admin, tags=["Catalog"])
    async def reload_drinks(ordering: OrderingService = Depends(get_ordering)) -> ReloadResponse:
        """Re-read the catalog file; on error the previous catalog stays active."""
        snapshot = await ordering.reload_catalog()
        return ReloadResponse(drinks=len(snapshot), version=snapshot.version)

    @app.post("/admin/seed", response_model=SeedResponse, dependencies=admin, tags=["Catalog"])
    async def seed_drinks(container: AppServices = Depends(get_services)) -> SeedResponse:
        return SeedResponse(seeded=await container.ledger.seed(container.catalog.snapshot()))

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.exception_handler(BarQueueError)
    async def bar_queue_exception_handler(request: Request, exc: BarQueueError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.error}: {exc.detail}")
        else:
            logger.info(f"{request.method} {request.url.path} → {exc.status_code}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.error, detail=exc.detail).model_dump(),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all exception handler."""
        logger.exception(f"Unhandled exception: {exc}")

        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Internal Server Error",
                "detail": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    return app


setup_logging()
app = create_app()


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "barqueue.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
