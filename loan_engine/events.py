import logging

from fastapi import FastAPI

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        dispatcher = getattr(app.state, "side_effects", None)
        if dispatcher is not None and dispatcher.pending:
            logger.info("Waiting for %d pending side effects", dispatcher.pending)
            await dispatcher.drain()
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()
        logger.info("Application shutdown")
