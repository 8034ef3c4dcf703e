from .models import Base, Group, Raffle, Participant, Subscription, GroupAdmin
from .models import RaffleStatus, SubscriptionStatus, AdminRole
from .session import create_engine, create_session_factory, session_scope
from .init_db import init_database, check_db_health

__all__ = [
    "Base",
    "Group",
    "Raffle",
    "Participant",
    "Subscription",
    "GroupAdmin",
    "RaffleStatus",
    "SubscriptionStatus",
    "AdminRole",
    "create_engine",
    "create_session_factory",
    "session_scope",
    "init_database",
    "check_db_health",
]
