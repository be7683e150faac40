from fastapi import Request

from broker.lifecycle import LifecycleManager
from broker.router import MessageRouter
from config import Settings


def get_lifecycle(request: Request) -> LifecycleManager:
    return request.app.state.lifecycle


def get_router(request: Request) -> MessageRouter:
    return request.app.state.message_router


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
