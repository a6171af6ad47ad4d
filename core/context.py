from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

from dotenv import load_dotenv


def _env(key: str) -> str:
    return os.getenv(key, "").strip()


@dataclass
class WidgetContext:
    # -------------------------------------------------
    # CHANNEL
    # -------------------------------------------------
    channel: str
    bot_nick: str

    # -------------------------------------------------
    # CHAT (IRC)
    # -------------------------------------------------
    oauth_token: Optional[str] = None

    # -------------------------------------------------
    # HELIX (badge catalogs)
    # -------------------------------------------------
    client_id: Optional[str] = None
    channel_id: Optional[str] = None

    # -------------------------------------------------

    @property
    def session_id(self) -> str:
        return f"twitch:{self.channel}"

    @property
    def chat_enabled(self) -> bool:
        return bool(self.oauth_token)

    @property
    def helix_enabled(self) -> bool:
        return bool(self.oauth_token and self.client_id)

    # -------------------------------------------------

    def __post_init__(self):
        self.channel = self.channel.strip().lstrip("#").lower()
        if not self.channel:
            raise RuntimeError("TWITCH_CHANNEL is REQUIRED")

        self.bot_nick = (self.bot_nick or self.channel).strip().lower()

        token = (self.oauth_token or "").strip()
        if token.lower().startswith("oauth:"):
            token = token.split(":", 1)[1]
        self.oauth_token = token or None

        self.client_id = (self.client_id or "").strip() or None
        self.channel_id = (self.channel_id or "").strip() or None

    # -------------------------------------------------

    @classmethod
    def from_env(
        cls,
        *,
        channel: Optional[str] = None,
        bot_nick: Optional[str] = None,
        oauth_token: Optional[str] = None,
        env_file: Optional[Path] = None,
    ) -> "WidgetContext":
        """
        Resolve credentials from arguments, then the environment (.env is
        loaded first when present).
        """
        load_dotenv(dotenv_path=env_file)
        return cls(
            channel=channel or _env("TWITCH_CHANNEL"),
            bot_nick=bot_nick or _env("TWITCH_BOT_NICK"),
            oauth_token=oauth_token or _env("TWITCH_OAUTH_TOKEN"),
            client_id=_env("TWITCH_CLIENT_ID"),
            channel_id=_env("TWITCH_CHANNEL_ID"),
        )
