"""SQLAlchemy models: re-export all."""

from models.user import User, UserPreference  # noqa: F401
from models.conversation import Conversation, Message  # noqa: F401
from models.usage import UserUsage  # noqa: F401
from models.api_key import ApiKey  # noqa: F401
from models.setting import Setting  # noqa: F401
from models.billing import (  # noqa: F401
    PaymentTransaction,
    SubscriptionPlan,
    UserCredits,
    UserSubscription,
)
from models.ai_model import AIModel  # noqa: F401
