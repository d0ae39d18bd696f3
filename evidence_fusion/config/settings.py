"""
Application settings for the evidence fusion engine.

Code defaults live here and can be overridden through environment variables
or a local ``.env`` file. Component tuning lives in ``fusion.py``; this module
only carries settings for the process around the engine (logging, data
location, CLI defaults).
"""
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingSettings(BaseSettings):
    """
    Configuration for structured logging.
    """
    model_config = SettingsConfigDict(env_prefix='LOGGING_')

    LEVEL: str = "INFO"
    QUIET_LOGGERS: List[str] = ["evidence_fusion.data.cache.cache_manager"]
    # None picks JSON when stderr is not a terminal
    JSON: Optional[bool] = None


class DataSettings(BaseSettings):
    """
    Configuration for the CSV-backed reference data source.
    """
    model_config = SettingsConfigDict(env_prefix='DATA_')

    DATA_DIR: str = "data"
    FILE_PATTERN: str = "{instrument}_{timeframe}.csv"
    TIMEFRAMES: List[str] = ["M15", "H1", "H4", "D1"]


class Settings(BaseSettings):
    """
    Main settings object that aggregates all other settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    logging: LoggingSettings = LoggingSettings()
    data: DataSettings = DataSettings()

    DEFAULT_INSTRUMENT: str = "EURUSD"


settings = Settings()
