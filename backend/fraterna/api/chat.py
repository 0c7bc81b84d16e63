"""REST API surface for the global chat and the emergency channel."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from fraterna.api.security_deps import get_verified_member
from fraterna.domain.chat import service
from fraterna.domain.chat.models import (
	ChatError,
	ChatForbidden,
	ChatMessage,
	ChatNotFound,
	EmergencyUnavailable,
	InvalidMessage,
)
from fraterna.domain.chat.schemas import ChatMessageResponse, ChatMessagesResponse, SendMessageRequest
from fraterna.domain.members.models import MemberProfile

router = APIRouter()


def _map_error(exc: ChatError) -> HTTPException:
	if isinstance(exc, ChatNotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, (ChatForbidden, EmergencyUnavailable)):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, InvalidMessage):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)


def _message(message: ChatMessage) -> ChatMessageResponse:
	return ChatMessageResponse(
		id=message.id,
		user_id=message.user_id,
		author_name=message.author_name,
		content=message.content,
		created_at=message.created_at,
		expires_at=message.expires_at,
		city=message.city,
	)


@router.get("/chat/messages", response_model=ChatMessagesResponse)
async def list_messages(member: MemberProfile = Depends(get_verified_member)) -> ChatMessagesResponse:
	return ChatMessagesResponse(items=[_message(m) for m in await service.list_messages()])


@router.post("/chat/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
	payload: SendMessageRequest,
	member: MemberProfile = Depends(get_verified_member),
) -> ChatMessageResponse:
	try:
		return _message(await service.send_message(member.id, payload.content))
	except ChatError as exc:
		raise _map_error(exc) from None


@router.delete("/chat/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
	message_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> None:
	try:
		await service.delete_message(member.id, str(message_id), is_moderator=member.is_moderator)
	except ChatError as exc:
		raise _map_error(exc) from None


@router.get("/emergency/messages", response_model=ChatMessagesResponse)
async def list_emergency(member: MemberProfile = Depends(get_verified_member)) -> ChatMessagesResponse:
	return ChatMessagesResponse(items=[_message(m) for m in await service.list_emergency(member.city)])


@router.post("/emergency/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_emergency(
	payload: SendMessageRequest,
	member: MemberProfile = Depends(get_verified_member),
) -> ChatMessageResponse:
	try:
		return _message(await service.send_emergency(member.id, member.city, payload.content))
	except ChatError as exc:
		raise _map_error(exc) from None
