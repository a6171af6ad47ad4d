"""
======================================================================
 StreamFeed Overlay Runtime - Version v0.3.0-alpha (Build 2026.10)
======================================================================
"""

import argparse
import asyncio

from core.config_loader import ConfigLoader
from core.context import WidgetContext
from core.session import WidgetSession
from core.timers import LoopTimers
from services.twitch.workers.chat_worker import TwitchChatWorker
from shared.feed.events import ChatMessageEvent, ModerationCommand, PresenceUpdate
from shared.logging.logger import get_logger

log = get_logger("twitch.poc")


class _PrintingSession(WidgetSession):
    """Widget session that echoes every accepted feed event to stdout."""

    async def on_event(self, payload):
        event = await super().on_event(payload)
        if isinstance(event, ChatMessageEvent):
            message = event.message
            badges = ",".join(b.type for b in message.badges)
            print(f"💬 [{badges}] {message.display_name} → {message.body_text}")
        elif isinstance(event, ModerationCommand):
            print(f"⚙️  {event.message.display_name} ran {event.trigger} {' '.join(event.args)}")
        elif isinstance(event, PresenceUpdate):
            print(f"👋 {event.display_name} is here")
        return event


async def _run(args) -> None:
    context = WidgetContext.from_env(
        channel=args.channel,
        bot_nick=args.nick,
        oauth_token=args.token,
    )
    if not context.chat_enabled:
        raise RuntimeError(
            "Missing Twitch token. Provide --token or set TWITCH_OAUTH_TOKEN"
        )

    config = ConfigLoader().load()
    session = _PrintingSession(
        config=config,
        context=context,
        timers=LoopTimers(asyncio.get_running_loop()),
    )
    await session.start(fetch_catalogs=not args.offline)

    worker = TwitchChatWorker(
        session=session,
        oauth_token=context.oauth_token,
        channel=context.channel,
        nickname=context.bot_nick,
        request_membership=args.joins or config.chat.track_joins,
    )

    log.info("Twitch feed POC connected; listening for messages")

    try:
        await worker.run()
    except asyncio.CancelledError:
        raise
    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutting down POC")
    finally:
        await worker.shutdown()
        await session.shutdown()

        snapshot = session.snapshot()
        print(
            f"Overlay at exit: {len(snapshot['messages'])} message(s), "
            f"{len(snapshot['chatters']['items'])} chatter(s)"
        )


def main() -> None:
    parser = argparse.ArgumentParser(
        description="StreamFeed Twitch overlay smoke test (IRC over TLS)"
    )
    parser.add_argument("--channel", help="Twitch channel to join (without #)")
    parser.add_argument("--nick", help="Bot nickname (defaults to channel name)")
    parser.add_argument("--token", help="OAuth token (with or without oauth: prefix)")
    parser.add_argument("--joins", action="store_true", help="Track JOIN events as presence")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip badge and third-party emote catalog fetches",
    )

    args = parser.parse_args()
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
