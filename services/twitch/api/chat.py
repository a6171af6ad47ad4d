import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple

from services.twitch.models.message import TwitchChatMessage
from shared.logging.logger import get_logger

log = get_logger("twitch.chat")

_TAG_ESCAPES = {
    ":": ";",
    "s": " ",
    "\\": "\\",
    "r": "\r",
    "n": "\n",
}

_FLAG_TAGS = ("subscriber", "mod", "vip", "first-msg", "returning-chatter", "turbo")


class TwitchChatClient:
    """
    Minimal Twitch IRC-over-TLS client for chat I/O.

    - No event loop creation on import.
    - Connection lifecycle is owned by callers (workers or POC scripts).
    - Yields PRIVMSG lines (and JOIN lines when membership is requested) as
      TwitchChatMessage with feed-ready tags.
    """

    HOST = "irc.chat.twitch.tv"
    PORT = 6697

    def __init__(
        self,
        token: str,
        nickname: str,
        channel: str,
        *,
        request_tags: bool = True,
        request_membership: bool = False,
    ):
        self.token = self._normalize_token(token)
        self.nickname = nickname.strip().lower()
        self.channel = self._normalize_channel(channel)
        self.request_tags = request_tags
        self.request_membership = request_membership

        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None

        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def connect(self) -> None:
        """
        Establish TLS IRC connection and join the configured channel.
        """
        if self._connected:
            log.debug("TwitchChatClient already connected")
            return

        log.info(
            f"Connecting to Twitch IRC ({self.HOST}:{self.PORT}) "
            f"as nick={self.nickname} channel=#{self.channel}"
        )
        self.reader, self.writer = await asyncio.open_connection(
            self.HOST, self.PORT, ssl=True
        )

        await self._send_raw(f"PASS {self.token}")
        await self._send_raw(f"NICK {self.nickname}")

        caps = []
        if self.request_tags:
            caps += ["twitch.tv/tags", "twitch.tv/commands"]
        if self.request_membership:
            caps.append("twitch.tv/membership")
        if caps:
            await self._send_raw(f"CAP REQ :{' '.join(caps)}")

        await self._send_raw(f"JOIN #{self.channel}")
        self._connected = True
        log.info(f"Joined Twitch channel #{self.channel}")

    async def close(self) -> None:
        if not self.writer:
            return

        log.info("Closing Twitch IRC connection")
        try:
            await self._send_raw("PART #" + self.channel)
        except Exception as e:
            log.debug(f"PART during close failed: {e}")

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except Exception as e:
            log.debug(f"Error during Twitch IRC close ignored: {e}")
        finally:
            self.reader = None
            self.writer = None
            self._connected = False

    # ------------------------------------------------------------------ #
    # Messaging
    # ------------------------------------------------------------------ #

    async def send(self, channel: str, text: str) -> None:
        text = " ".join(text.splitlines()).strip()
        if not text:
            return

        target = self._normalize_channel(channel) or self.channel
        await self._send_raw(f"PRIVMSG #{target} :{text}")
        log.info(f"[#{target}] Sent chat message ({len(text)} chars)")

    async def send_message(self, text: str) -> None:
        await self.send(self.channel, text)

    async def iter_messages(self) -> AsyncGenerator[TwitchChatMessage, None]:
        """
        Read chat lines and yield parsed TwitchChatMessage instances.
        """
        if not self.reader:
            raise RuntimeError("iter_messages called before connect()")

        while True:
            line = await self.reader.readline()

            if line == b"":
                # Connection closed by remote
                log.warning("Twitch IRC connection closed by remote")
                break

            decoded = line.decode("utf-8", errors="replace").strip()
            if not decoded:
                continue

            if decoded.startswith("PING"):
                await self._handle_ping(decoded)
                continue

            msg = self.parse_line(decoded)
            if msg:
                yield msg

    # ------------------------------------------------------------------ #
    # Parsing
    # ------------------------------------------------------------------ #

    def parse_line(self, raw: str) -> Optional[TwitchChatMessage]:
        """
        Parse one IRC line. PRIVMSG always yields a message; JOIN only when
        membership was requested. Other commands are ignored.
        """
        raw_tags, remainder = self._split_tags(raw)
        prefix, command, params = self._split_prefix_and_command(remainder)

        if command == "PRIVMSG" and len(params) >= 2:
            text = params[1]
        elif command == "JOIN" and self.request_membership and params:
            text = ""
        else:
            if command == "NOTICE" and params:
                log.warning(f"Twitch NOTICE: {params[-1]}")
            return None

        channel = params[0].lstrip("#")
        username = self._parse_username(prefix)
        if not username:
            username = (raw_tags.get("display-name") or "unknown").lower()

        tags = self.normalize_tags(raw_tags)
        tags.setdefault("username", username)

        message = TwitchChatMessage(
            raw=raw,
            command=command,
            username=username,
            channel=channel,
            text=text,
            tags=tags,
            is_self=username.lower() == self.nickname,
            message_id=raw_tags.get("id") or None,
            user_id=raw_tags.get("user-id") or None,
            room_id=raw_tags.get("room-id") or None,
            timestamp=self._parse_timestamp(raw_tags.get("tmi-sent-ts")),
        )

        log.debug(
            f"[#{channel}] {command} {username}: {text} "
            f"(id={message.message_id}, ts={message.timestamp})"
        )

        return message

    @classmethod
    def normalize_tags(cls, raw_tags: Dict[str, str]) -> Dict[str, Any]:
        tags: Dict[str, Any] = {k: cls._unescape_tag(v) for k, v in raw_tags.items()}

        raw_badges = raw_tags.get("badges") or ""
        tags["badges-raw"] = raw_badges
        tags["badges"] = cls._parse_badges(raw_badges)
        tags["emotes"] = cls._parse_emotes(raw_tags.get("emotes"))

        if raw_tags.get("id"):
            tags["message-id"] = raw_tags["id"]

        for key in _FLAG_TAGS:
            if key in raw_tags:
                tags[key] = raw_tags[key] == "1"

        return tags

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #

    async def _send_raw(self, data: str) -> None:
        if not self.writer:
            raise RuntimeError("IRC writer is not initialized")

        payload = (data + "\r\n").encode("utf-8")
        self.writer.write(payload)
        await self.writer.drain()

    async def _handle_ping(self, raw: str) -> None:
        # Twitch IRC sends: PING :tmi.twitch.tv
        payload = raw.split(" ", 1)[-1]
        await self._send_raw(f"PONG {payload}")
        log.debug("Responded to Twitch PING")

    @staticmethod
    def _split_tags(raw: str) -> Tuple[Dict[str, str], str]:
        if raw.startswith("@") and " " in raw:
            tags_part, remainder = raw.split(" ", 1)
            tags = {}
            for pair in tags_part[1:].split(";"):
                if "=" in pair:
                    k, v = pair.split("=", 1)
                    tags[k] = v
                elif pair:
                    tags[pair] = ""
            return tags, remainder

        return {}, raw

    @staticmethod
    def _split_prefix_and_command(raw: str) -> Tuple[str, str, Tuple[str, ...]]:
        prefix = ""
        rest = raw
        if raw.startswith(":"):
            if " " in raw:
                prefix, rest = raw[1:].split(" ", 1)
            else:
                prefix = raw[1:]
                rest = ""

        if " :" in rest:
            middle, trailing = rest.split(" :", 1)
            parts = middle.split()
            if not parts:
                return prefix, "", tuple()
            command = parts[0]
            params = tuple(parts[1:] + [trailing])
        else:
            parts = rest.split()
            if not parts:
                return prefix, "", tuple()
            command = parts[0]
            params = tuple(parts[1:])

        return prefix, command, params

    @staticmethod
    def _unescape_tag(value: str) -> str:
        if "\\" not in value:
            return value
        out = []
        chars = iter(value)
        for ch in chars:
            if ch != "\\":
                out.append(ch)
                continue
            nxt = next(chars, "")
            out.append(_TAG_ESCAPES.get(nxt, nxt))
        return "".join(out)

    @staticmethod
    def _parse_username(prefix: str) -> str:
        # Prefix example: nickname!nickname@nickname.tmi.twitch.tv
        if "!" in prefix:
            return prefix.split("!", 1)[0]
        return ""

    @staticmethod
    def _parse_timestamp(raw_ts: Optional[str]) -> Optional[datetime]:
        if not raw_ts:
            return None
        try:
            millis = int(raw_ts)
            return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _parse_badges(raw_badges: Optional[str]) -> Dict[str, str]:
        badges: Dict[str, str] = {}
        for pair in (raw_badges or "").split(","):
            badge_type, sep, version = pair.partition("/")
            if badge_type and sep:
                badges[badge_type] = version
        return badges

    @staticmethod
    def _parse_emotes(raw_emotes: Optional[str]) -> Dict[str, List[str]]:
        # 25:0-4,12-16/1902:6-10
        emotes: Dict[str, List[str]] = {}
        for group in (raw_emotes or "").split("/"):
            emote_id, sep, ranges = group.partition(":")
            if emote_id and sep and ranges:
                emotes[emote_id] = [r for r in ranges.split(",") if r]
        return emotes

    @staticmethod
    def _normalize_token(token: str) -> str:
        token = token.strip()
        if not token.startswith("oauth:"):
            return f"oauth:{token}"
        return token

    @staticmethod
    def _normalize_channel(channel: str) -> str:
        return channel.lstrip("#").strip().lower()
