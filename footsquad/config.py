import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Core configuration settings"""
    
    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///footsquad.db')
    
    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    
    # Post-match windows
    RATINGS_WINDOW_HOURS = int(os.getenv('RATINGS_WINDOW_HOURS', 24))
    SCORE_SUBMISSION_TIMEOUT_HOURS = int(os.getenv('SCORE_SUBMISSION_TIMEOUT_HOURS', 72))
    
    # Sweep cadence for the housekeeping loop
    HOUSEKEEPING_INTERVAL_MINUTES = int(os.getenv('HOUSEKEEPING_INTERVAL_MINUTES', 15))
    
    @classmethod
    def get_async_database_url(cls) -> str:
        """Get the database URL with an async driver"""
        database_url = cls.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')
        return database_url
    
    @classmethod
    def validate(cls):
        """Validate that configured windows are usable"""
        if cls.RATINGS_WINDOW_HOURS <= 0:
            raise ValueError("RATINGS_WINDOW_HOURS must be positive")
        if cls.SCORE_SUBMISSION_TIMEOUT_HOURS <= 0:
            raise ValueError("SCORE_SUBMISSION_TIMEOUT_HOURS must be positive")
        if cls.HOUSEKEEPING_INTERVAL_MINUTES <= 0:
            raise ValueError("HOUSEKEEPING_INTERVAL_MINUTES must be positive")
