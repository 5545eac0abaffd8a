"""Runtime configuration for the auto-answer pipeline.

All values come from the environment (a local .env is loaded first):

  Marketplace:  MARKETPLACE_SELLER_ID, MARKETPLACE_API_KEY, MARKETPLACE_API_SECRET
                MARKETPLACE_BASE_URL (optional)
  Chatbase:     CHATBASE_AGENT_ID, CHATBASE_API_KEY, CHATBASE_URL (optional)
  Pipeline:     UNKNOWN_ANSWER_SENTINEL, QUEUE_INTERVAL_SECONDS, REQUEST_RETRIES,
                REQUEST_RETRY_DELAY_SECONDS, REQUEST_TIMEOUT_SECONDS, DEFAULT_TIME_ZONE

Usage:
    from app_config import AppConfig
    config = AppConfig.from_env()
"""
import base64
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

MARKETPLACE_BASE_URL = "https://api.trendyol.com/sapigw/suppliers"
CHATBASE_URL = "https://www.chatbase.co/api/v1/chat"
DEFAULT_TIME_ZONE = "Europe/Istanbul"
DEFAULT_UNKNOWN_SENTINEL = "xyz"

_REQUIRED = (
    "MARKETPLACE_SELLER_ID",
    "MARKETPLACE_API_KEY",
    "MARKETPLACE_API_SECRET",
    "CHATBASE_AGENT_ID",
    "CHATBASE_API_KEY",
)


@dataclass(frozen=True)
class AppConfig:
    seller_id: str
    marketplace_api_key: str
    marketplace_api_secret: str
    chatbase_agent_id: str
    chatbase_api_key: str
    marketplace_base_url: str = MARKETPLACE_BASE_URL
    chatbase_url: str = CHATBASE_URL
    unknown_answer_sentinel: str = DEFAULT_UNKNOWN_SENTINEL
    queue_interval_seconds: float = 1.0
    request_retries: int = 1
    request_retry_delay_seconds: float = 5.0
    request_timeout_seconds: float = 30.0
    default_time_zone: str = DEFAULT_TIME_ZONE

    @property
    def marketplace_token(self) -> str:
        """Basic-auth token built from the marketplace key and secret."""
        raw = f"{self.marketplace_api_key}:{self.marketplace_api_secret}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Build the config from environment variables.

        Raises RuntimeError naming every missing credential variable.
        """
        missing = [name for name in _REQUIRED if not os.environ.get(name)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Copy .env.example to .env and fill in the marketplace and Chatbase credentials."
            )
        return cls(
            seller_id=os.environ["MARKETPLACE_SELLER_ID"],
            marketplace_api_key=os.environ["MARKETPLACE_API_KEY"],
            marketplace_api_secret=os.environ["MARKETPLACE_API_SECRET"],
            chatbase_agent_id=os.environ["CHATBASE_AGENT_ID"],
            chatbase_api_key=os.environ["CHATBASE_API_KEY"],
            marketplace_base_url=os.environ.get("MARKETPLACE_BASE_URL", MARKETPLACE_BASE_URL),
            chatbase_url=os.environ.get("CHATBASE_URL", CHATBASE_URL),
            unknown_answer_sentinel=os.environ.get(
                "UNKNOWN_ANSWER_SENTINEL", DEFAULT_UNKNOWN_SENTINEL
            ),
            queue_interval_seconds=float(os.environ.get("QUEUE_INTERVAL_SECONDS", "1.0")),
            request_retries=int(os.environ.get("REQUEST_RETRIES", "1")),
            request_retry_delay_seconds=float(
                os.environ.get("REQUEST_RETRY_DELAY_SECONDS", "5.0")
            ),
            request_timeout_seconds=float(os.environ.get("REQUEST_TIMEOUT_SECONDS", "30")),
            default_time_zone=os.environ.get("DEFAULT_TIME_ZONE", DEFAULT_TIME_ZONE),
        )
