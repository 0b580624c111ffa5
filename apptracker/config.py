"""
Configuration management for App Tracker.
Loads environment variables and provides configuration settings.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Application configuration class."""

    # Application Configuration
    APP_PORT = int(os.getenv('APP_PORT', '5000'))
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Provider API endpoints
    GITHUB_API_URL = os.getenv('GITHUB_API_URL', 'https://api.github.com')
    GITHUB_API_VERSION = os.getenv('GITHUB_API_VERSION', '2022-11-28')
    VERCEL_API_URL = os.getenv('VERCEL_API_URL', 'https://api.vercel.com')
    CLOUDFLARE_API_URL = os.getenv('CLOUDFLARE_API_URL', 'https://api.cloudflare.com/client/v4')

    # Provider calls
    PROVIDER_TIMEOUT = float(os.getenv('PROVIDER_TIMEOUT', '10'))
    PROVIDER_MAX_PAGES = int(os.getenv('PROVIDER_MAX_PAGES', '5'))
    PROVIDER_PAGE_SIZE = int(os.getenv('PROVIDER_PAGE_SIZE', '30'))

    # Sync retry policy
    SYNC_MAX_ATTEMPTS = int(os.getenv('SYNC_MAX_ATTEMPTS', '3'))
    SYNC_BACKOFF_BASE = float(os.getenv('SYNC_BACKOFF_BASE', '0.5'))
    SYNC_BACKOFF_FACTOR = float(os.getenv('SYNC_BACKOFF_FACTOR', '2'))
    SYNC_BACKOFF_CAP = float(os.getenv('SYNC_BACKOFF_CAP', '4'))
    SYNC_MAX_WORKERS = int(os.getenv('SYNC_MAX_WORKERS', '6'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'apptracker.log')

    @classmethod
    def validate(cls):
        """Validate configuration values."""
        errors = []

        if cls.PROVIDER_TIMEOUT <= 0:
            errors.append("PROVIDER_TIMEOUT must be positive")
        if cls.PROVIDER_MAX_PAGES < 1:
            errors.append("PROVIDER_MAX_PAGES must be at least 1")
        if not 1 <= cls.PROVIDER_PAGE_SIZE <= 100:
            errors.append("PROVIDER_PAGE_SIZE must be between 1 and 100")
        if cls.SYNC_MAX_ATTEMPTS < 1:
            errors.append("SYNC_MAX_ATTEMPTS must be at least 1")
        if cls.SYNC_BACKOFF_BASE < 0 or cls.SYNC_BACKOFF_CAP < cls.SYNC_BACKOFF_BASE:
            errors.append("SYNC_BACKOFF_CAP must be >= SYNC_BACKOFF_BASE >= 0")
        if cls.SYNC_BACKOFF_FACTOR < 1:
            errors.append("SYNC_BACKOFF_FACTOR must be >= 1")
        if cls.SYNC_MAX_WORKERS < 1:
            errors.append("SYNC_MAX_WORKERS must be at least 1")

        return errors

# Create a singleton instance
config = Config()
