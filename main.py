#!/usr/bin/env python3
"""
Main FastAPI application - Entry point
"""

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import API_HOST, API_PORT, API_TITLE, API_DESCRIPTION, API_VERSION, LOG_FILE, LOG_LEVEL, LOG_FORMAT
from config import ES_HOST, CASE_SOURCE_URL, CHECK_INTERVAL, BATCH_SIZE, BATCH_DELAY, MESSAGE_DELAY
from case_source import CaseSourceClient
from elasticsearch_client import CaseStore
from errors import MonitorError
from messaging_client import WhatsAppClient
from monitor import CaseMonitor
import api_endpoints

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    "not_found": 404,
    "conflict": 409,
    "invalid_input": 400,
    "fetch_error": 502,
    "transport_error": 502,
}


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler()
        ]
    )


def build_services():
    """Composition root: one store, one monitor per process"""
    store = CaseStore()
    monitor = CaseMonitor(
        source=CaseSourceClient(),
        store=store,
        transport=WhatsAppClient(),
    )
    return monitor, store


async def monitor_error_handler(request: Request, exc: MonitorError):
    status_code = ERROR_STATUS.get(exc.classification, 500)
    logger.warning(f"⚠️ {request.method} {request.url.path} failed: {exc.classification}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"❌ Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": str(exc), "type": "internal_error"})


def create_app(monitor: CaseMonitor, store, auto_start: bool = True) -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION
    )
    app.state.monitor = monitor
    app.state.store = store

    app.add_exception_handler(MonitorError, monitor_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # === Register Routes ===
    app.add_api_route("/", api_endpoints.root, methods=["GET"])
    app.add_api_route("/health", api_endpoints.health, methods=["GET"])
    app.add_api_route("/status", api_endpoints.get_status, methods=["GET"])
    app.add_api_route("/start", api_endpoints.start_monitoring, methods=["POST"])
    app.add_api_route("/stop", api_endpoints.stop_monitoring, methods=["POST"])
    app.add_api_route("/process-now", api_endpoints.process_now, methods=["POST"])
    app.add_api_route("/config", api_endpoints.update_config, methods=["PUT"])
    app.add_api_route("/stats", api_endpoints.get_stats, methods=["GET"])
    app.add_api_route("/test-message", api_endpoints.send_test_message, methods=["POST"])

    app.add_api_route("/users", api_endpoints.list_users, methods=["GET"])
    app.add_api_route("/users", api_endpoints.create_user, methods=["POST"])
    app.add_api_route("/users/{user_id}", api_endpoints.get_user, methods=["GET"])
    app.add_api_route("/users/{user_id}", api_endpoints.update_user, methods=["PUT"])
    app.add_api_route("/users/{user_id}", api_endpoints.delete_user, methods=["DELETE"])

    app.add_api_route("/cases", api_endpoints.list_cases, methods=["GET"])
    app.add_api_route("/cases", api_endpoints.add_case, methods=["POST"])
    app.add_api_route("/cases/{cino}", api_endpoints.get_case, methods=["GET"])
    app.add_api_route("/cases/{cino}", api_endpoints.remove_case, methods=["DELETE"])

    app.add_api_route("/subscriptions", api_endpoints.list_subscriptions, methods=["GET"])
    app.add_api_route("/subscriptions", api_endpoints.create_subscription, methods=["POST"])
    app.add_api_route("/subscriptions/{subscription_id}", api_endpoints.update_subscription, methods=["PUT"])
    app.add_api_route("/subscriptions/{subscription_id}", api_endpoints.delete_subscription, methods=["DELETE"])

    @app.on_event("startup")
    async def startup_event():
        """Run on application startup"""
        logger.info("=" * 70)
        logger.info(f"🚀 {API_TITLE} Started")
        logger.info("=" * 70)
        logger.info(f"Elasticsearch: {ES_HOST}")
        logger.info(f"Case source: {CASE_SOURCE_URL}")
        logger.info(f"Check Interval: {CHECK_INTERVAL} seconds")
        logger.info(f"Batch size: {BATCH_SIZE}, batch delay: {BATCH_DELAY}s, message delay: {MESSAGE_DELAY}s")
        logger.info("=" * 70)

        try:
            await asyncio.to_thread(store.ensure_indices)
        except Exception as e:
            # The first cycle reports the failure through the admin alert
            logger.error(f"❌ Could not prepare Elasticsearch indices: {e}")

        if auto_start:
            logger.info("🔄 Auto-starting monitoring...")
            monitor.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Run on application shutdown"""
        monitor.stop()
        logger.info("=" * 70)
        logger.info(f"🛑 {API_TITLE} Stopped")
        logger.info(f"Cycles run: {monitor.state.run_count}, errors: {monitor.state.error_count}")
        logger.info("=" * 70)

    return app


def build_app() -> FastAPI:
    """Factory for `uvicorn main:build_app --factory`"""
    setup_logging()
    return create_app(*build_services())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(build_app(), host=API_HOST, port=API_PORT)
