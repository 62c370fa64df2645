import os


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'your-secret-key-change-this-in-production')
    FIREBASE_DATABASE_URL = os.environ.get(
        'FIREBASE_DATABASE_URL',
        'https://broiler-ledger-default-rtdb.firebaseio.com'
    )
    FIREBASE_SERVICE_ACCOUNT_KEY = os.environ.get('FIREBASE_SERVICE_ACCOUNT_KEY')
    FIREBASE_SERVICE_ACCOUNT_PATH = os.environ.get('FIREBASE_SERVICE_ACCOUNT_PATH', 'firebase-service-account.json')
    DEVELOPMENT_MODE = os.environ.get('DEVELOPMENT_MODE', '').lower() == 'true'
    APP_ID = os.environ.get('APP_ID', 'broiler-app')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    TRANSACTION_MAX_RETRIES = int(os.environ.get('TRANSACTION_MAX_RETRIES', 25))
    TESTING = False


class TestingConfig(Config):
    TESTING = True
    DEVELOPMENT_MODE = True
    APP_ID = 'test-app'
