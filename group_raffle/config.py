from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings

    Built once at startup and passed to the components that need it.
    Instances are immutable; call ``Settings.load()`` again to pick up
    a changed environment.
    """

    # Telegram Bot Configuration
    TELEGRAM_BOT_TOKEN: str
    ADMIN_USER_IDS: str = ""  # Comma-separated list of owner user IDs

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///group_raffle.db"

    # Subscription Settings
    DEFAULT_SUBSCRIPTION_GROUP_ID: int = 0  # Group checked by /subscription and /sub
    SUBSCRIPTION_DEFAULT_AMOUNT: float = 3.0
    SUBSCRIPTION_PAYMENT_METHOD: str = "PIX"
    PIX_KEY: str = ""

    # Rules (/regulamento)
    RULES_CHANNEL: str = ""  # Channel holding the rules post, e.g. @CentralFortnite
    RULES_MESSAGE_ID: int = 0
    RULES_URL: str = ""  # Link sent when the post cannot be copied

    # Draw Settings
    LUCK_WIN_PENALTY: float = 0.5  # Weight reduction per previous win in the group
    RANDOM_SEED: Optional[int] = None  # Fixed seed for reproducible draws (testing only)

    # Expiry Notifier
    NOTIFIER_ENABLED: bool = True
    NOTIFIER_TIMEZONE: str = "America/Sao_Paulo"
    NOTIFIER_HOUR: int = 6
    NOTIFIER_MINUTE: int = 0
    NOTIFIER_WINDOW_DAYS: int = 2
    NOTIFIER_MESSAGE_DELAY: float = 0.1  # Seconds between direct messages

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_ROUTING_FILE: str = "log_routing.json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        frozen=True,
    )

    @classmethod
    def load(cls, **overrides) -> "Settings":
        """Read settings from the environment and ``.env`` file"""
        return cls(**overrides)

    def get_admin_ids(self) -> List[int]:
        """
        Parse and return list of owner user IDs from comma-separated string

        Returns:
            List of owner user IDs as integers
        """
        try:
            return [int(uid.strip()) for uid in self.ADMIN_USER_IDS.split(",") if uid.strip()]
        except (ValueError, AttributeError):
            return []

    def is_owner(self, user_id: int) -> bool:
        """Check if user ID is in the configured owner list"""
        return user_id in self.get_admin_ids()
