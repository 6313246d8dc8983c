import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.domains.accounts.api.user_endpoints import get_current_user, resolve_user_from_token
from app.domains.accounts.models.user import User
from app.shared.exceptions import ConversationForbiddenException, DomainException
from ..schemas.message import MessageCreate, MessageResponse
from ..services.chat_service import ChatService, ChatConnectionManager, get_chat_connections

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/conversations/{user_id}", response_model=List[MessageResponse])
async def get_conversations(
    user_id: int,
    limit: int = Query(200, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if current_user.id != user_id and not current_user.is_admin:
        raise ConversationForbiddenException(user_id, current_user.id)
    return await ChatService.get_conversations(db, user_id, limit=limit)


@router.post("/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    connections: ChatConnectionManager = Depends(get_chat_connections)
):
    message = await ChatService.create_message(db, current_user.id, message_data)
    await connections.deliver(message)
    return message


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: str = Query(...),
    db: AsyncSession = Depends(get_db),
    connections: ChatConnectionManager = Depends(get_chat_connections)
):
    """Live chat: inbound ``{receiver_id, content}`` frames are stored and pushed to the receiver."""
    try:
        user = await resolve_user_from_token(db, token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await connections.connect(user.id, websocket)
    try:
        while True:
            frame = await websocket.receive_json()
            try:
                message_data = MessageCreate.model_validate(frame)
                message = await ChatService.create_message(db, user.id, message_data)
            except ValidationError as e:
                await websocket.send_json({"type": "error", "error": "invalid message", "details": e.errors(include_url=False, include_context=False)})
                continue
            except DomainException as e:
                await websocket.send_json({"type": "error", "error": e.message, "error_code": e.error_code})
                continue

            payload = MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)
            await websocket.send_json({"type": "sent", "message": payload})
            await connections.deliver(message)
    except WebSocketDisconnect:
        logger.debug(f"Chat socket for user {user.id} disconnected")
    finally:
        await connections.disconnect(user.id, websocket)
