"""Chat endpoints: send, conversations, messages, model catalog."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import chat_rate_limit, get_current_user
from database import get_db
from models.ai_model import AIModel
from models.conversation import Conversation, Message
from models.user import User
from schemas.chat import ConversationOut, MessageOut, ModelOut, SendMessageIn, SendMessageOut
from services.chat import (
    ConversationNotFound,
    InsufficientCredits,
    ModelNotAllowed,
    QuotaExceeded,
    get_owned_conversation,
    send_message,
)
from services.providers import BUILTIN_MODELS, SUPPORTED_PROVIDERS, ProviderError

logger = logging.getLogger(__name__)

# get_current_user runs first so anonymous callers get 401 before being counted
router = APIRouter(dependencies=[Depends(get_current_user), Depends(chat_rate_limit)])

CONVERSATION_LIST_LIMIT = 50


def _owned_or_404(db: Session, user: User, conversation_id: int) -> Conversation:
    try:
        return get_owned_conversation(db, user, conversation_id)
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")


@router.post(
    "/send/",
    response_model=SendMessageOut,
    responses={
        402: {"description": "Insufficient credits"},
        429: {"description": "Daily message limit reached"},
        500: {"description": "Provider failure"},
    },
)
def send(
    payload: SendMessageIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        result = send_message(
            db,
            user,
            payload.message,
            payload.provider,
            payload.model,
            conversation_id=payload.conversation_id,
        )
    except ModelNotAllowed as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc))
    except InsufficientCredits:
        raise HTTPException(status_code=402, detail="Insufficient credits")
    except QuotaExceeded:
        raise HTTPException(status_code=429, detail="Daily message limit reached")
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ProviderError:
        raise HTTPException(status_code=500, detail="AI service temporarily unavailable")
    return result


@router.get("/conversations/", response_model=list[ConversationOut])
def list_conversations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = (
        db.query(Conversation, func.count(Message.id), func.max(Message.created_at))
        .outerjoin(Message, Message.conversation_id == Conversation.id)
        .filter(Conversation.user_id == user.id)
        .group_by(Conversation.id)
        .order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        .limit(CONVERSATION_LIST_LIMIT)
        .all()
    )
    return [
        ConversationOut(
            id=conv.id,
            title=conv.title,
            provider=conv.provider,
            model=conv.model,
            created_at=conv.created_at,
            updated_at=conv.updated_at,
            message_count=count,
            last_message_at=last,
        )
        for conv, count, last in rows
    ]


@router.get("/conversations/{conversation_id}/messages/", response_model=list[MessageOut])
def list_messages(
    conversation_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    _owned_or_404(db, user, conversation_id)
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at, Message.id)
        .all()
    )


@router.delete("/conversations/{conversation_id}/", status_code=204)
def delete_conversation(
    conversation_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    conv = _owned_or_404(db, user, conversation_id)
    db.delete(conv)
    db.commit()
    logger.info("Deleted conversation %s", conversation_id)


@router.get("/models/", response_model=dict[str, list[ModelOut]])
def list_models(db: Session = Depends(get_db)):
    """Active registry models grouped by provider, or the built-in catalog."""
    entries = (
        db.query(AIModel)
        .filter(AIModel.is_active == True)  # noqa: E712
        .order_by(AIModel.provider, AIModel.model_name)
        .all()
    )
    if not entries:
        return BUILTIN_MODELS

    grouped: dict[str, list[ModelOut]] = {p: [] for p in SUPPORTED_PROVIDERS}
    for entry in entries:
        grouped.setdefault(entry.provider, []).append(ModelOut(
            id=entry.model_name,
            name=entry.display_name,
            description=entry.description,
            max_tokens=entry.max_tokens,
            required_plan=entry.required_plan,
        ))
    return grouped
