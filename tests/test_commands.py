import asyncio

from core.state_exporter import RuntimeStatus
from core.timers import ManualTimers
from services.commands import ActionExecutor, Command, CommandRegistry
from services.commands.actions import SEND_CHAT_MESSAGE, send_chat_action
from services.commands.builtin import (
    RESET_VISITS,
    SET_CHATTER_MODE,
    WELCOME_VISIT,
    builtin_commands,
)
from shared.feed.events import ModerationCommand
from shared.feed.models import ChatMessage


def make_command(trigger, *, args=(), mod=False, broadcaster=False, author="viewer"):
    message = ChatMessage(
        id=f"1-{author}",
        author_id=f"id-{author}",
        username=author,
        display_name=author.title(),
        color="#ffffff",
        badges=[],
        emote_positions=[],
        body_text=" ".join([trigger, *args]),
        arrival_time=0.0,
        is_mod=mod,
        is_broadcaster=broadcaster,
    )
    return ModerationCommand(trigger=trigger, args=list(args), message=message)


def build_registry(timers=None):
    registry = CommandRegistry(timers=timers or ManualTimers(), session_id="test")
    for command in builtin_commands(["!in", "!welcome"]):
        registry.register(command)
    return registry


class ShoutCommand(Command):
    def __init__(self):
        super().__init__(command_id="shout", triggers=["!Shout"], cooldown=30)

    def build_actions(self, ctx):
        return [ctx.reply(" ".join(ctx.args).upper())]


class BrokenCommand(Command):
    def __init__(self):
        super().__init__(command_id="broken", triggers=["!broken"])

    def build_actions(self, ctx):
        raise ValueError("nope")


def test_builtin_triggers_are_registered() -> None:
    registry = build_registry()

    assert {"!in", "!welcome", "!reset", "!refresh", "!chatterpic", "!chatterletter"} <= registry.triggers


def test_welcome_command_emits_visit_action() -> None:
    actions = build_registry().process(make_command("!in", author="ann"), channel="streamer")

    assert [a["action_type"] for a in actions] == [WELCOME_VISIT]
    assert actions[0]["payload"]["username"] == "ann"
    assert actions[0]["payload"]["channel"] == "streamer"
    assert actions[0]["trigger_id"] == "welcome"


def test_mod_only_commands_check_permissions() -> None:
    registry = build_registry()

    assert registry.process(make_command("!reset")) == []

    actions = registry.process(make_command("!reset", mod=True), channel="streamer")
    assert [a["action_type"] for a in actions] == [RESET_VISITS, SEND_CHAT_MESSAGE]
    assert actions[1]["payload"] == {"text": "All user states have been reset!", "channel": "streamer"}

    assert registry.process(make_command("!chatterpic", broadcaster=True))[0] == {
        "action_type": SET_CHATTER_MODE,
        "payload": {"mode": "pic"},
        "trigger_id": "chatter_mode",
    }


def test_cooldown_is_per_user() -> None:
    timers = ManualTimers()
    registry = CommandRegistry(timers=timers)
    registry.register(ShoutCommand())

    assert registry.process(make_command("!shout", args=["hi"], author="ann"))
    assert registry.process(make_command("!shout", args=["hi"], author="ann")) == []
    assert registry.process(make_command("!shout", args=["hi"], author="ben"))

    timers.advance(30)
    assert registry.process(make_command("!shout", args=["hi"], author="ann"))


def test_disabled_and_broken_commands_yield_nothing() -> None:
    registry = CommandRegistry(timers=ManualTimers())
    registry.register(ShoutCommand())
    registry.register(BrokenCommand())

    registry.set_enabled("!SHOUT", False)

    assert registry.process(make_command("!shout", args=["x"])) == []
    assert registry.process(make_command("!broken")) == []


def test_executor_sends_through_platform_sender() -> None:
    status = RuntimeStatus()
    executor = ActionExecutor(status=status, default_channel="streamer")
    sent = []

    async def sender(channel, text):
        sent.append((channel, text))

    executor.register_platform_sender("twitch", sender)
    results = asyncio.run(executor.execute([send_chat_action("hello")]))

    assert sent == [("streamer", "hello")]
    assert results[0]["status"] == "success"
    assert status.count("actions") == 1


def test_executor_without_sender_disables_send() -> None:
    status = RuntimeStatus()
    executor = ActionExecutor(status=status)

    results = asyncio.run(executor.execute([send_chat_action("hello", channel="x")]))

    assert results[0]["status"] == "failed"
    assert status.status_of("send") == "disabled"
    assert status.count("send_failures") == 1


def test_executor_records_sender_failure_as_degraded() -> None:
    status = RuntimeStatus()
    executor = ActionExecutor(status=status)

    async def sender(channel, text):
        raise ConnectionError("socket closed")

    executor.register_platform_sender("twitch", sender)
    asyncio.run(executor.execute([send_chat_action("hello", channel="x")]))

    assert status.status_of("send") == "degraded"
    assert status.errors[-1]["kind"] == "TransientFetchFailure"


def test_local_actions_can_chain_follow_ups() -> None:
    status = RuntimeStatus()
    executor = ActionExecutor(status=status, default_channel="streamer")
    sent = []
    calls = []

    async def sender(channel, text):
        sent.append(text)

    def on_ping(payload):
        calls.append(payload)
        return [send_chat_action("pong")]

    executor.register_platform_sender("twitch", sender)
    executor.register_local_action("ping", on_ping)

    results = asyncio.run(executor.execute([{"action_type": "ping", "payload": {"n": 1}}]))

    assert calls == [{"n": 1}]
    assert sent == ["pong"]
    assert [r["status"] for r in results] == ["success", "success"]


def test_unknown_action_type_fails_without_raising() -> None:
    status = RuntimeStatus()
    executor = ActionExecutor(status=status)

    results = asyncio.run(executor.execute([{"action_type": "launch_rockets"}, "not an action"]))

    assert len(results) == 1
    assert results[0]["status"] == "failed"
    assert status.count("actions_failed") == 1
