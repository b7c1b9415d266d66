"""Message-send pipeline: quota, conversation bookkeeping, provider dispatch, usage."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from database import utcnow
from models.ai_model import AIModel
from models.conversation import Conversation, Message
from models.user import User
from services import providers
from services.billing import TIER_FREE, charges_per_message, plan_allows, spend_credits
from services.providers import ProviderError
from services.usage import check_quota, record_usage

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20
TITLE_LENGTH = 50


class QuotaExceeded(Exception):
    pass


class InsufficientCredits(Exception):
    pass


class ConversationNotFound(Exception):
    pass


class ModelNotAllowed(Exception):
    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SendResult:
    message: str
    conversation_id: int
    tokens_used: int
    cost: float


def get_owned_conversation(db: Session, user: User, conversation_id: int) -> Conversation:
    conv = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user.id)
        .first()
    )
    if conv is None:
        raise ConversationNotFound(conversation_id)
    return conv


def check_model_access(db: Session, user: User, provider: str, model: str) -> str:
    """Reject inactive or plan-gated registry models and return the plan the model requires.

    Unregistered models pass as ``free``.
    """
    entry = (
        db.query(AIModel)
        .filter(AIModel.provider == provider, AIModel.model_name == model)
        .first()
    )
    if entry is None:
        return TIER_FREE
    if not entry.is_active:
        raise ModelNotAllowed("Model is not available", status_code=400)
    if not plan_allows(db, user, entry.required_plan):
        raise ModelNotAllowed(f"Model requires a {entry.required_plan} plan")
    return entry.required_plan


def conversation_title(message: str) -> str:
    return message[:TITLE_LENGTH] + "..."


def load_history(db: Session, conversation_id: int, limit: int = HISTORY_LIMIT) -> list[dict]:
    """The most recent *limit* messages, oldest first."""
    rows = (
        db.query(Message.role, Message.content)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .all()
    )
    return [{"role": role, "content": content} for role, content in reversed(rows)]


def send_message(
    db: Session,
    user: User,
    message: str,
    provider: str,
    model: str,
    conversation_id: int | None = None,
) -> SendResult:
    required_plan = check_model_access(db, user, provider, model)
    pay_per_message = charges_per_message(db, user, required_plan)

    quota = check_quota(db, user, pay_per_message=pay_per_message)
    if not quota.allowed:
        if pay_per_message:
            logger.info("User %s lacks %s credits for a paid message", user.id, quota.credit_cost)
            raise InsufficientCredits()
        logger.info("Daily limit reached for user %s (%s/%s)", user.id, quota.messages_sent, quota.limit)
        raise QuotaExceeded()

    if conversation_id:
        conv = get_owned_conversation(db, user, conversation_id)
    else:
        conv = Conversation(
            user_id=user.id,
            title=conversation_title(message),
            provider=provider,
            model=model,
        )
        db.add(conv)
        db.flush()

    db.add(Message(conversation_id=conv.id, role="user", content=message))
    db.commit()

    history = load_history(db, conv.id)

    try:
        result = providers.dispatch(db, provider, model, history)
    except ProviderError:
        db.rollback()
        logger.exception("AI provider %s failed for conversation %s", provider, conv.id)
        raise

    db.add(
        Message(
            conversation_id=conv.id,
            role="assistant",
            content=result.content,
            tokens_used=result.tokens_used,
            cost=result.cost,
        )
    )
    conv.updated_at = utcnow()
    record_usage(db, user.id, result.tokens_used, result.cost)
    if quota.use_credits:
        spend_credits(db, user.id, quota.credit_cost)
    db.commit()

    return SendResult(
        message=result.content,
        conversation_id=conv.id,
        tokens_used=result.tokens_used,
        cost=result.cost,
    )
