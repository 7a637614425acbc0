from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from chat_service.dependencies import get_conversation_service, get_current_user
from chat_service.models import User
from chat_service.schemas.conversations import (
    ConversationOut,
    ConversationSummary,
    DirectConversationCreate,
)
from chat_service.schemas.messages import (
    ForwardRequest,
    MessageCreate,
    MessageOut,
    MessagePage,
    ReactionCreate,
    ReactionOut,
)
from chat_service.services.conversations import ConversationService

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.get("", response_model=List[ConversationSummary], response_model_exclude_none=True)
async def get_my_conversations(
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    """Conversation list, newest activity first. Marks waiting messages as received."""
    return await service.list_conversations(user)


@router.post(
    "",
    response_model=ConversationOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def start_conversation(
    data: DirectConversationCreate,
    response: Response,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    conversation, created = await service.start_direct_conversation(user, data.user_id)
    if not created:
        response.status_code = status.HTTP_200_OK
    return conversation


@router.get("/{conversation_id}", response_model=ConversationOut, response_model_exclude_none=True)
async def get_conversation(
    conversation_id: str,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    """Conversation with all messages. Marks the caller's unread messages as read."""
    return await service.open_conversation(user, conversation_id)


@router.get(
    "/{conversation_id}/messages",
    response_model=MessagePage,
    response_model_exclude_none=True,
)
async def get_messages(
    conversation_id: str,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    messages = await service.get_message_page(user, conversation_id, page, size)
    return MessagePage(page=page, size=size, messages=messages)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    data: MessageCreate,
    response: Response,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    message, created = await service.send_message(user, conversation_id, data)
    if not created:
        response.status_code = status.HTTP_200_OK
    return message


@router.delete("/{conversation_id}/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    conversation_id: str,
    message_id: str,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    await service.delete_message(user, conversation_id, message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{conversation_id}/messages/{message_id}/forward",
    response_model=MessageOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def forward_message(
    conversation_id: str,
    message_id: str,
    data: ForwardRequest,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    return await service.forward_message(
        user, conversation_id, message_id, data.target_conversation_id
    )


@router.post(
    "/{conversation_id}/messages/{message_id}/comments",
    response_model=ReactionOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def comment_message(
    conversation_id: str,
    message_id: str,
    data: ReactionCreate,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    return await service.react(user, conversation_id, message_id, data.emoji)


@router.delete(
    "/{conversation_id}/messages/{message_id}/comments/{reaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def uncomment_message(
    conversation_id: str,
    message_id: str,
    reaction_id: str,
    user: User = Depends(get_current_user),
    service: ConversationService = Depends(get_conversation_service),
):
    await service.unreact(user, conversation_id, message_id, reaction_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
