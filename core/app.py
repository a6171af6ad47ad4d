import asyncio
import signal
import sys
from typing import Optional

from core.config_loader import ConfigLoader
from core.context import WidgetContext
from core.session import WidgetSession
from core.timers import LoopTimers
from runtime import version as runtime_version
from services.overlay_api.server import OverlayApiServer
from services.twitch.workers.chat_worker import TwitchChatWorker
from shared.logging.logger import get_logger

log = get_logger("core.app")

STATUS_PUBLISH_INTERVAL = 30.0


async def main(stop_event: asyncio.Event, *, context: Optional[WidgetContext] = None):
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    context = context or WidgetContext.from_env()
    log.info(f"{runtime_version.as_string()} booting for #{context.channel}")

    config = ConfigLoader().load()

    # --------------------------------------------------
    # SESSION
    # --------------------------------------------------
    loop = asyncio.get_running_loop()
    session = WidgetSession(config=config, context=context, timers=LoopTimers(loop))
    await session.start()

    status_timer = session.timers.call_every(
        STATUS_PUBLISH_INTERVAL, session.publish_status, label="status:publish"
    )

    # --------------------------------------------------
    # OVERLAY API
    # --------------------------------------------------
    api = OverlayApiServer(config.overlay_api, session, loop=loop)
    try:
        api.start()
    except OSError as e:
        log.error(f"Overlay API server failed to start: {e}")
        session.status.record_error("overlay_api", str(e), kind=type(e).__name__)

    # --------------------------------------------------
    # CHAT WORKER
    # --------------------------------------------------
    worker: Optional[TwitchChatWorker] = None
    worker_task: Optional[asyncio.Task] = None
    if context.chat_enabled:
        worker = TwitchChatWorker(
            session=session,
            oauth_token=context.oauth_token,
            channel=context.channel,
            nickname=context.bot_nick,
            request_membership=config.chat.track_joins,
        )
        worker_task = asyncio.create_task(worker.run(), name="twitch-chat")
    else:
        session.status.mark_disabled("chat", "TWITCH_OAUTH_TOKEN not set")
        session.status.mark_disabled("send", "TWITCH_OAUTH_TOKEN not set")

    # --------------------------------------------------
    # BLOCK UNTIL SHUTDOWN SIGNAL
    # --------------------------------------------------
    await stop_event.wait()

    log.info("Shutdown initiated")

    # --------------------------------------------------
    # ORDERLY SHUTDOWN
    # --------------------------------------------------
    session.timers.cancel(status_timer)

    if worker is not None:
        try:
            await worker.shutdown()
        except Exception as e:
            log.warning(f"Chat worker shutdown error ignored: {e}")
    if worker_task is not None and not worker_task.done():
        worker_task.cancel()
        await asyncio.gather(worker_task, return_exceptions=True)

    api.stop()
    await session.shutdown()

    log.info("StreamFeed stopped")


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    """
    Windows-safe Ctrl+C handler.
    Uses signal.signal + asyncio.Event to unwind cleanly.
    """

    def _handler(signum, frame):
        loop.call_soon_threadsafe(stop_event.set)

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.debug(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run():
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    stop_event = asyncio.Event()

    _install_signal_handlers(loop, stop_event)

    try:
        loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received; shutdown initiated")
        stop_event.set()

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))

        # --------------------------------------------------
        # FINAL LOOP CLEANUP
        # --------------------------------------------------
        loop.run_until_complete(loop.shutdown_asyncgens())

        asyncio.set_event_loop(None)
        loop.close()


if __name__ == "__main__":
    run()
    sys.exit(0)
