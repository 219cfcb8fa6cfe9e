from fastapi import Request

from src.services.case_aggregation import CaseService
from src.services.chat_service import ChatService
from src.services.message_router import MessageRouter


def get_message_router(request: Request) -> MessageRouter:
    return request.app.state.message_router


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_case_service(request: Request) -> CaseService:
    return request.app.state.case_service
