from pydantic_settings import BaseSettings
from typing import Optional
import os


class Settings(BaseSettings):
    # Environment
    environment: str = "development"
    log_level: str = "INFO"
    
    # Server
    host: str = "0.0.0.0"
    port: int = 8081
    
    # Database
    database_url: str = "sqlite:///./data/monitor.db"
    
    # Balance history side file
    balance_history_path: str = "./data/moonshot_balance_history.json"
    balance_history_max_entries: int = 1000
    
    # Moonshot balance API
    moonshot_api_key: Optional[str] = os.getenv("MOONSHOT_API_KEY")
    moonshot_api_base: str = "https://api.moonshot.ai/v1"
    
    # Outbound HTTP
    upstream_timeout_seconds: float = 10.0
    
    # Background balance poller (0 disables)
    balance_poll_interval_seconds: int = 900
    
    # Fan-out
    subscriber_queue_size: int = 100
    
    # CORS
    allowed_origins: list[str] = ["*"]
    
    class Config:
        env_file = ".env"


settings = Settings()
