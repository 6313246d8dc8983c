"""
Chat persistence and live delivery.

Messages are stored first and then pushed to every socket the receiver has
open in this process. Delivery is best-effort; the stored conversation is
the source of truth.
"""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Set

from fastapi import WebSocket
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.domains.accounts.services.user_service import UserService
from app.shared.exceptions import RecipientNotFoundException
from ..models.message import Message
from ..schemas.message import MessageCreate, MessageResponse

logger = logging.getLogger(__name__)


class ChatService:

    @staticmethod
    async def create_message(db: AsyncSession, sender_id: int, message_data: MessageCreate) -> Message:
        receiver = await UserService.get_user_by_id(db, message_data.receiver_id)
        if receiver is None:
            raise RecipientNotFoundException(message_data.receiver_id)
        message = Message(
            sender_id=sender_id,
            receiver_id=message_data.receiver_id,
            content=message_data.content
        )
        db.add(message)
        await db.commit()
        await db.refresh(message)
        return message

    @staticmethod
    async def get_conversations(db: AsyncSession, user_id: int, limit: int = 200) -> List[Message]:
        result = await db.execute(
            select(Message)
            .where(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class ChatConnectionManager:
    """Tracks open chat sockets per user for this process."""

    def __init__(self):
        self._connections: Dict[int, Set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections[user_id].add(websocket)
        logger.debug(f"Chat socket opened for user {user_id}")

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            sockets = self._connections.get(user_id)
            if sockets:
                sockets.discard(websocket)
                if not sockets:
                    del self._connections[user_id]
        logger.debug(f"Chat socket closed for user {user_id}")

    def connection_count(self, user_id: int) -> int:
        return len(self._connections.get(user_id, ()))

    async def send_to_user(self, user_id: int, payload: Dict[str, Any]) -> int:
        """Push a payload to every socket of ``user_id``; returns how many received it."""
        async with self._lock:
            sockets = list(self._connections.get(user_id, ()))
        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"Dropping chat socket for user {user_id}: {e}")
                await self.disconnect(user_id, websocket)
        return delivered

    async def deliver(self, message: Message) -> int:
        payload = MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)
        return await self.send_to_user(message.receiver_id, {"type": "message", "message": payload})


chat_connections = ChatConnectionManager()


def get_chat_connections() -> ChatConnectionManager:
    return chat_connections
