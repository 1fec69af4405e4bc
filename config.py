"""Application configuration profiles."""
from __future__ import annotations

import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_URI = os.environ.get('DATABASE_URL', f"sqlite:///{os.path.join(BASE_DIR, 'inventory.db')}")


class BaseConfig:
    SQLALCHEMY_DATABASE_URI = DEFAULT_DB_URI
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    DEFAULT_LOAN_PERIOD_DAYS = int(os.environ.get('LOAN_PERIOD_DAYS', 7))
    INVOICE_PREFIX = os.environ.get('INVOICE_PREFIX', 'INV')
    INVOICE_ALLOCATION_ATTEMPTS = 3
    ITEM_LIST_LIMIT = 200
    AVAILABLE_SEARCH_LIMIT = 100


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'


class ProductionConfig(BaseConfig):
    DEBUG = False


config_by_name = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}
