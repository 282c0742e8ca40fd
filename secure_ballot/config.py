import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    MONGODB_URI = os.environ.get('MONGODB_URI') or 'mongodb://localhost:27017/'
    DATABASE_NAME = os.environ.get('DATABASE_NAME') or 'secure_ballot'

    # Environment detection
    FLASK_ENV = os.environ.get('FLASK_ENV', 'development')
    DEBUG = FLASK_ENV == 'development'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # Shamir's Secret Sharing configuration
    SHAMIR_THRESHOLD = int(os.environ.get('SHAMIR_THRESHOLD', 3))  # Minimum shares needed
    SHAMIR_TOTAL_SHARES = int(os.environ.get('SHAMIR_TOTAL_SHARES', 5))  # Total shares generated
    RECONSTRUCTION_SESSION_SECONDS = int(os.environ.get('RECONSTRUCTION_SESSION_SECONDS', 900))  # 15 minutes

    # Election key pair
    RSA_KEY_SIZE = 2048  # bits

    # Batch decryption thread pool (None = executor default)
    BATCH_DECRYPT_WORKERS = int(os.environ['BATCH_DECRYPT_WORKERS']) if os.environ.get('BATCH_DECRYPT_WORKERS') else None

    # Mobile channel static EC key (PEM); generated per process when unset
    MOBILE_SERVER_KEY_PATH = os.environ.get('MOBILE_SERVER_KEY_PATH')

    # Audit logging configuration
    AUDIT_LOG_ENABLED = True


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    LOG_LEVEL = 'WARNING'


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    AUDIT_LOG_ENABLED = False  # Disable audit logging in tests


def get_config():
    """Get configuration based on FLASK_ENV environment variable."""
    env = os.environ.get('FLASK_ENV', 'development')
    config_map = {
        'development': DevelopmentConfig,
        'production': ProductionConfig,
        'testing': TestingConfig
    }
    return config_map.get(env, DevelopmentConfig)
