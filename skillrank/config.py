import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == 'true'


class Config:
    """Engine configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///skillrank.db')
    SQLITE_BUSY_TIMEOUT = float(os.getenv('SQLITE_BUSY_TIMEOUT', 30))

    # Logging
    DEBUG = _env_bool('DEBUG', 'False')
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_TO_FILE = _env_bool('LOG_TO_FILE', 'True')

    # Redis lock for the ranking batch (optional)
    REDIS_URL = os.getenv('REDIS_URL', '')
    RANKINGS_LOCK_TTL = int(os.getenv('RANKINGS_LOCK_TTL', 600))

    # Elo calculation settings
    STARTING_ELO = int(os.getenv('STARTING_ELO', 1000))
    K_FACTOR_PROVISIONAL = int(os.getenv('K_FACTOR_PROVISIONAL', 32))  # First 30 matches
    K_FACTOR_STANDARD = int(os.getenv('K_FACTOR_STANDARD', 16))        # All subsequent matches
    PROVISIONAL_MATCH_COUNT = int(os.getenv('PROVISIONAL_MATCH_COUNT', 30))

    # Skill score settings
    MIN_TECHNIQUES_FOR_RANKING = int(os.getenv('MIN_TECHNIQUES_FOR_RANKING', 3))
    REEVALUATION_MIN_DAYS = int(os.getenv('REEVALUATION_MIN_DAYS', 14))
    REEVALUATION_STALE_DAYS = int(os.getenv('REEVALUATION_STALE_DAYS', 45))

    # Rankings
    DEFAULT_COUNTRY = os.getenv('DEFAULT_COUNTRY', 'PE')

    @classmethod
    def get_async_database_url(cls) -> str:
        """Return DATABASE_URL with an async driver for plain sqlite URLs"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url

    @classmethod
    def validate(cls):
        """Validate that configuration values are coherent"""
        if not cls.DATABASE_URL:
            raise ValueError("DATABASE_URL is required")
        if cls.K_FACTOR_PROVISIONAL <= 0 or cls.K_FACTOR_STANDARD <= 0:
            raise ValueError("K factors must be positive")
        if cls.PROVISIONAL_MATCH_COUNT < 0:
            raise ValueError("PROVISIONAL_MATCH_COUNT cannot be negative")
        if cls.MIN_TECHNIQUES_FOR_RANKING < 1:
            raise ValueError("MIN_TECHNIQUES_FOR_RANKING must be at least 1")
        if cls.REEVALUATION_MIN_DAYS > cls.REEVALUATION_STALE_DAYS:
            raise ValueError("REEVALUATION_MIN_DAYS must not exceed REEVALUATION_STALE_DAYS")
        if cls.REDIS_URL and not cls.REDIS_URL.startswith(('redis://', 'rediss://', 'unix://')):
            raise ValueError("REDIS_URL must use redis://, rediss:// or unix://")
