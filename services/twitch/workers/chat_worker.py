import asyncio
from typing import Optional

from services.twitch.api.chat import TwitchChatClient
from services.twitch.models.message import TwitchChatMessage
from shared.logging.logger import get_logger

log = get_logger("twitch.chat_worker")


class TwitchChatWorker:
    """
    Session-owned Twitch chat worker (IRC over TLS).

    Responsibilities:
    - Own the TwitchChatClient lifecycle (connect, read, send, shutdown)
    - Hand every parsed line to the widget session's router, in arrival order
    - Register itself as the session's outbound chat sender while connected
    """

    def __init__(
        self,
        *,
        session,
        oauth_token: str,
        channel: str,
        nickname: Optional[str] = None,
        request_membership: bool = False,
        client: Optional[TwitchChatClient] = None,
    ):
        if not oauth_token and client is None:
            raise RuntimeError("Twitch oauth_token is required")
        if not channel:
            raise RuntimeError("Twitch channel is required")

        self.session = session
        self.channel = channel
        self.nickname = nickname or channel
        self._client = client or TwitchChatClient(
            token=oauth_token,
            nickname=self.nickname,
            channel=self.channel,
            request_membership=request_membership,
        )

        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------ #

    async def run(self) -> None:
        log.info(f"[{self.session.session_id}] Twitch chat worker starting")
        try:
            await self._client.connect()
        except Exception as e:
            log.error(f"[{self.session.session_id}] Twitch chat connect failed: {e}")
            self.session.status.mark_degraded("chat", f"connect failed: {e}")
            self.session.status.record_error("chat", str(e), kind=type(e).__name__)
            return

        self.session.attach_sender(self._client.send)
        self.session.status.mark_active("chat")

        try:
            async for message in self._client.iter_messages():
                await self._handle_message(message)

                if self._stop_event.is_set():
                    break
            else:
                self.session.status.mark_degraded("chat", "connection closed by remote")

        except asyncio.CancelledError:
            log.debug(f"[{self.session.session_id}] Twitch chat worker cancelled")
            raise
        except Exception as e:
            log.error(f"[{self.session.session_id}] Twitch chat worker error: {e}")
            self.session.status.mark_degraded("chat", str(e))
            self.session.status.record_error("chat", str(e), kind=type(e).__name__)
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        if self._stop_event.is_set():
            return

        self._stop_event.set()
        self.session.detach_sender()
        await self._client.close()
        log.info(f"[{self.session.session_id}] Twitch chat worker stopped")

    # ------------------------------------------------------------------ #

    async def send(self, text: str) -> None:
        await self._client.send(self.channel, text)

    # ------------------------------------------------------------------ #

    async def _handle_message(self, message: TwitchChatMessage) -> None:
        log.debug(
            f"[{self.session.session_id}] [#{message.channel}] "
            f"{message.username}: {message.text}"
        )
        await self.session.on_event(message.to_event())
