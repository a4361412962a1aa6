from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from loan_engine.api.v1 import api_router
from loan_engine.core.errors import register_exception_handlers
from loan_engine.core.logging import configure_logging
from loan_engine.core.settings import get_settings
from loan_engine.db.session import AsyncSessionLocal, engine
from loan_engine.events import register_event_handlers
from loan_engine.middlewares.request_context import RequestContextMiddleware
from loan_engine.middlewares.security_headers import SecurityHeadersMiddleware
from loan_engine.services.agreements import AgreementDelivery
from loan_engine.services.notifications import SendGridMailer
from loan_engine.services.side_effects import SideEffectDispatcher
from loan_engine.services.storage.adapter import get_storage_adapter


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()
    app = FastAPI(title="Loan Engine", version="0.1.0")
    register_exception_handlers(app)

    app.state.engine = engine
    app.state.side_effects = SideEffectDispatcher(settings.side_effect_concurrency)
    app.state.agreement_delivery = AgreementDelivery(
        AsyncSessionLocal,
        get_storage_adapter(settings),
        SendGridMailer.from_settings(settings),
    )

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.enable_hsts)
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.include_router(api_router, prefix="/api/v1")
    register_event_handlers(app)
    return app


app = create_app()
