from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./norboy.db"
    debug: bool = False
    log_level: str = "INFO"

    timezone: str = "America/Bogota"
    schedule_check_enabled: bool = True
    holiday_check_enabled: bool = True
    holidays_file: Optional[str] = None
    holiday_cache_seconds: int = 3600

    weekday_start_hour: int = 8
    weekday_start_minute: int = 0
    weekday_end_hour: int = 16
    weekday_end_minute: int = 30
    saturday_enabled: bool = True
    saturday_start_hour: int = 9
    saturday_start_minute: int = 0
    saturday_end_hour: int = 12
    saturday_end_minute: int = 0
    sunday_enabled: bool = False
    sunday_start_hour: int = 9
    sunday_start_minute: int = 0
    sunday_end_hour: int = 12
    sunday_end_minute: int = 0

    spam_max_repeated: int = 3
    spam_similarity_threshold: float = 0.9
    spam_history_size: int = 10

    dedup_cache_size: int = 1000
    message_window_size: int = 50
    conversation_cycle_minutes: int = 60
    menu_flow_enabled: bool = False

    answer_engine_url: str = "http://localhost:8001/answer"
    answer_engine_timeout_seconds: float = 20.0
    transport_url: str = "http://localhost:3000/send"
    transport_token: Optional[str] = None
    transport_timeout_seconds: float = 30.0
    dashboard_events_url: Optional[str] = None

    webhook_secret: Optional[str] = None
    admin_token: Optional[str] = None
    alert_bot_token: Optional[str] = None
    alert_chat_id: Optional[str] = None

    release_loop_enabled: bool = True
    release_loop_interval_seconds: float = 300.0

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
