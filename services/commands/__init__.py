from services.commands.base import Command, CommandContext
from services.commands.registry import CommandRegistry
from services.commands.actions import ActionExecutor

__all__ = ["Command", "CommandContext", "CommandRegistry", "ActionExecutor"]
