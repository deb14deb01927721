#!/usr/bin/env python3
"""
FastAPI route handlers
"""

import asyncio
import logging
from typing import Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import API_TITLE, API_VERSION

logger = logging.getLogger(__name__)


# === Request Bodies ===

class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    mobile_number: str = Field(..., min_length=10, max_length=15)
    email: str = ""
    is_active: bool = True


class UserUpdate(BaseModel):
    name: Optional[str] = None
    mobile_number: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class CaseCreate(BaseModel):
    cino: str = Field(..., min_length=1)


class SubscriptionCreate(BaseModel):
    user_id: str
    cino: str
    priority: str = Field("medium", pattern="^(low|medium|high|urgent)$")
    alias: str = Field("", max_length=100)
    notes: str = Field("", max_length=500)
    notification_settings: Optional[Dict[str, bool]] = None


class SubscriptionUpdate(BaseModel):
    is_active: Optional[bool] = None
    priority: Optional[str] = Field(None, pattern="^(low|medium|high|urgent)$")
    alias: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)
    notification_settings: Optional[Dict[str, bool]] = None


class MonitorConfigUpdate(BaseModel):
    batch_size: Optional[int] = Field(None, ge=1)
    batch_delay: Optional[float] = Field(None, ge=0)
    message_delay: Optional[float] = Field(None, ge=0)


class PingMessage(BaseModel):
    mobile_number: str


def _monitor(request: Request):
    return request.app.state.monitor


def _store(request: Request):
    return request.app.state.store


# === Monitoring ===

async def root():
    """Root endpoint with API information"""
    return {
        "message": API_TITLE,
        "version": API_VERSION,
        "endpoints": {
            "/status": "Get current monitoring status",
            "/start": "Start scheduled monitoring",
            "/stop": "Stop scheduled monitoring",
            "/process-now": "Run one monitoring cycle immediately",
            "/config": "Update batch size and delays",
            "/stats": "Get monitoring and storage statistics",
            "/users": "Manage users",
            "/cases": "Manage monitored cases",
            "/subscriptions": "Manage case subscriptions",
            "/test-message": "Send a WhatsApp test message",
        }
    }


async def health():
    return {"status": "ok"}


async def get_status(request: Request):
    """Get current monitoring status"""
    return _monitor(request).get_status()


async def start_monitoring(request: Request):
    """Start scheduled monitoring"""
    monitor = _monitor(request)
    if not monitor.start():
        return JSONResponse(status_code=400, content={"error": "Monitoring is already running", "type": "conflict"})

    return {
        "message": "Monitoring started successfully",
        "check_interval_seconds": monitor.check_interval
    }


async def stop_monitoring(request: Request):
    """Stop scheduled monitoring"""
    monitor = _monitor(request)
    if not monitor.stop():
        return JSONResponse(status_code=400, content={"error": "Monitoring is not running", "type": "conflict"})

    logger.info("Monitoring stopped by user request")
    return {
        "message": "Monitoring stopped successfully",
        "run_count": monitor.state.run_count
    }


async def process_now(request: Request):
    """Run one monitoring cycle immediately (manual trigger)"""
    logger.info("🚀 Manual processing triggered")
    result = await _monitor(request).run_once()
    return result.to_dict()


async def update_config(request: Request, body: MonitorConfigUpdate):
    return _monitor(request).update_config(**body.model_dump())


async def get_stats(request: Request):
    """Get detailed statistics"""
    storage = await asyncio.to_thread(_store(request).get_stats)
    return {
        "storage": storage,
        "monitor": _monitor(request).get_status()
    }


async def send_test_message(request: Request, body: PingMessage):
    result = await asyncio.to_thread(_monitor(request).transport.send_test_message, body.mobile_number)
    if not result.success:
        return JSONResponse(status_code=502, content={"error": result.error, "type": "transport_error"})
    return {"message": "Test message sent", "message_id": result.message_id}


# === Users ===

async def list_users(request: Request, active: Optional[bool] = None, size: int = 100, offset: int = 0):
    users = await asyncio.to_thread(_store(request).list_users, active, size, offset)
    return {"users": [u.to_dict() for u in users], "count": len(users)}


async def get_user(request: Request, user_id: str):
    user = await asyncio.to_thread(_store(request).get_user, user_id)
    if user is None:
        return JSONResponse(status_code=404, content={"error": f"User {user_id} not found", "type": "not_found"})

    subscriptions = await asyncio.to_thread(_store(request).list_subscriptions, None, user_id)
    return {"user": user.to_dict(), "subscriptions": [s.to_dict() for s in subscriptions]}


async def create_user(request: Request, body: UserCreate):
    user = await asyncio.to_thread(_store(request).create_user, **body.model_dump())
    return JSONResponse(status_code=201, content={"user": user.to_dict()})


async def update_user(request: Request, user_id: str, body: UserUpdate):
    user = await asyncio.to_thread(lambda: _store(request).update_user(user_id, **body.model_dump()))
    return {"user": user.to_dict()}


async def delete_user(request: Request, user_id: str):
    removed = await asyncio.to_thread(_store(request).delete_user, user_id)
    return {"message": f"User {user_id} deleted", "subscriptions_removed": removed}


# === Cases ===

async def list_cases(request: Request, active: Optional[bool] = None, size: int = 100, offset: int = 0):
    cases = await asyncio.to_thread(_store(request).list_cases, active, size, offset)
    return {"cases": cases, "count": len(cases)}


async def get_case(request: Request, cino: str):
    case = await asyncio.to_thread(_store(request).get_case, cino)
    subscriptions = await asyncio.to_thread(_store(request).list_subscriptions, cino)
    return {"case": case, "subscriptions": [s.to_dict() for s in subscriptions]}


async def add_case(request: Request, body: CaseCreate):
    case = await _monitor(request).add_case(body.cino.strip())
    return JSONResponse(status_code=201, content={"case": case})


async def remove_case(request: Request, cino: str):
    removed = await _monitor(request).remove_case(cino)
    return {"message": f"Case {cino} deleted", "subscriptions_removed": removed}


# === Subscriptions ===

async def list_subscriptions(
    request: Request,
    cino: Optional[str] = None,
    user_id: Optional[str] = None,
    size: int = 100,
    offset: int = 0,
):
    subscriptions = await asyncio.to_thread(_store(request).list_subscriptions, cino, user_id, size, offset)
    return {"subscriptions": [s.to_dict() for s in subscriptions], "count": len(subscriptions)}


async def create_subscription(request: Request, body: SubscriptionCreate):
    data = body.model_dump()
    subscription = await asyncio.to_thread(lambda: _store(request).create_subscription(**data))
    return JSONResponse(status_code=201, content={"subscription": subscription.to_dict()})


async def update_subscription(request: Request, subscription_id: str, body: SubscriptionUpdate):
    data = body.model_dump()
    subscription = await asyncio.to_thread(
        lambda: _store(request).update_subscription(subscription_id, **data)
    )
    return {"subscription": subscription.to_dict()}


async def delete_subscription(request: Request, subscription_id: str):
    await asyncio.to_thread(_store(request).delete_subscription, subscription_id)
    return {"message": f"Subscription {subscription_id} deleted"}
