"""Filing service: the interface between the mail client host and the rule engine.

One FilingService is created per session. It owns the rule store, the
evaluator and the auto-rule creator, and remembers the message and rule
currently on display so host commands such as "edit the current rule" can
be answered without module-level state.

The host drives it in three ways:
- Queries: action_state() tells the host whether its "move" action should
  be enabled and what it should say.
- Commands: move_message(), move_or_edit(), handle_moved_messages().
- The message bus: handle_command() answers the rule list/editor/import
  requests the host's rule pages send.

Usage:
    from mailfiler.engine.filing import FilingService

    service = FilingService(rule_store, mover=host_mover)
    state = await service.action_state(message)
    if state.mode == "move":
        await service.move_message(message)
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from mailfiler.core.errors import RuleNotFoundError, RuleValidationError
from mailfiler.core.logging import get_logger, set_request_id
from mailfiler.rules.auto_create import DEFAULT_PROTECTED_FOLDER_TYPES, AutoRuleCreator
from mailfiler.rules.evaluator import RuleEvaluator
from mailfiler.rules.headers import Message, extract_header, try_message
from mailfiler.rules.models import FolderRef, Rule
from mailfiler.rules.store import RuleStore

logger = get_logger(__name__)

ActionMode = Literal["move", "edit", "none"]
MoveOutcome = Literal["moved", "edit", "none"]


class MessageMover(Protocol):
    """Host capability that moves messages into a folder."""

    async def move(self, message_ids: list[Any], folder: FolderRef) -> None: ...


@dataclass(frozen=True, slots=True)
class ActionState:
    """What the host's move action should show for the displayed message.

    Attributes:
        mode: "move" (a rule applies and the message is elsewhere), "edit"
            (the message already sits in the rule's folder) or "none"
        enabled: Whether the move action is clickable
        edit_enabled: Whether "edit rule" is available
        rule: The applicable rule, if any
        folder_label: Destination name for the action label
    """

    mode: ActionMode
    enabled: bool
    edit_enabled: bool
    rule: Rule | None = None
    folder_label: str | None = None


def is_in_folder(message: Message, folder: FolderRef | None) -> bool:
    """Return True if message already sits in folder."""
    if folder is None or message.folder is None:
        return False
    return message.folder.same_folder(folder)


class FilingService:
    """Session-scoped facade over the rule engine.

    Attributes:
        current_rule: Rule found for the message last shown to the user
        current_message: Message last shown to the user
    """

    def __init__(
        self,
        store: RuleStore,
        mover: MessageMover | None = None,
        protected_folder_types: Iterable[str] = DEFAULT_PROTECTED_FOLDER_TYPES,
        auto_create_rules: bool = True,
    ):
        self.store = store
        self.evaluator = RuleEvaluator(store)
        self.creator = AutoRuleCreator(store, self.evaluator, protected_folder_types)
        self._mover = mover
        self.auto_create_rules = auto_create_rules

        self.current_rule: Rule | None = None
        self.current_message: Message | None = None

    # =========================================================================
    # Queries
    # =========================================================================

    async def find_rule(self, message: Message | Mapping[str, Any]) -> Rule | None:
        return await self.evaluator.find_rule(message)

    async def action_state(self, message: Message | Mapping[str, Any] | None) -> ActionState | None:
        """Evaluate the displayed message and remember it as the current context.

        Returns:
            The action state, or None when no message is displayed. A
            malformed message yields the "none" state.
        """
        if message is None:
            return None

        message = try_message(message)
        self.current_message = message
        if message is None:
            self.current_rule = None
            return ActionState(mode="none", enabled=False, edit_enabled=False)

        rule = await self.evaluator.find_rule(message)
        if rule is None or not rule.is_actionable:
            self.current_rule = None
            return ActionState(mode="none", enabled=False, edit_enabled=False)

        self.current_rule = rule
        mode: ActionMode = "edit" if is_in_folder(message, rule.folder) else "move"
        return ActionState(
            mode=mode,
            enabled=True,
            edit_enabled=True,
            rule=rule,
            folder_label=rule.folder.label if rule.folder else None,
        )

    async def list_rules(self) -> list[Rule]:
        """Return all rules tagged with their current index."""
        return await self.store.all()

    async def export_rules(self) -> list[dict[str, Any]]:
        return await self.store.export()

    # =========================================================================
    # Commands
    # =========================================================================

    async def move_message(self, message: Message | Mapping[str, Any] | None) -> bool:
        """Move a message to the folder of the rule that applies to it.

        Host move failures and malformed messages are logged and reported
        as False.

        Returns:
            True if the message was moved
        """
        if message is None:
            return False

        message = try_message(message)
        if message is None:
            return False
        rule = await self.evaluator.find_rule(message)
        return await self._move_to_rule_folder(message, rule)

    async def move_messages(self, messages: Iterable[Message | Mapping[str, Any]]) -> int:
        """Move each message by its rule.

        Returns:
            Number of messages moved
        """
        moved = 0
        for message in messages:
            if await self.move_message(message):
                moved += 1
        return moved

    async def move_or_edit(self, message: Message | Mapping[str, Any] | None) -> MoveOutcome:
        """Move the message, or ask for the rule editor if it is already filed.

        Returns:
            "moved", "edit" (message already in the rule's folder; the
            host should open the rule editor for current_rule) or "none"
        """
        if message is None:
            return "none"

        message = try_message(message)
        if message is None:
            return "none"
        rule = await self.evaluator.find_rule(message)

        if rule is not None and rule.is_actionable and is_in_folder(message, rule.folder):
            self.current_rule = rule
            return "edit"

        return "moved" if await self._move_to_rule_folder(message, rule) else "none"

    async def handle_moved_messages(
        self, messages: Iterable[Message | Mapping[str, Any]]
    ) -> list[int]:
        """Learn rules from messages the user moved by hand.

        Returns:
            Indices of the rules created
        """
        if not self.auto_create_rules:
            logger.debug("Rule learning disabled, ignoring moved messages")
            return []
        return await self.creator.handle_moved_messages(messages)

    async def update_rule(self, index: int, partial: Mapping[str, Any] | Rule) -> int:
        """Update a rule and refresh the current context."""
        result = await self.store.update(index, partial)
        if (
            self.current_message is None
            and self.current_rule is not None
            and self.current_rule.index == index
        ):
            self.current_rule = await self.store.get(index)
        else:
            await self._refresh_current()
        return result

    async def delete_rule(self, index: int) -> list[Rule]:
        """Delete a rule and return the re-fetched, re-indexed rule list."""
        await self.store.delete(index)
        await self._refresh_current()
        return await self.store.all()

    async def import_rules(self, payload: Any) -> bool:
        imported = await self.store.import_rules(payload)
        if imported:
            await self._refresh_current()
        return imported

    async def _refresh_current(self) -> None:
        # indices may have shifted, so never keep the old rule object
        if self.current_message is not None:
            await self.action_state(self.current_message)
            return

        if self.current_rule is None:
            return

        # opened without a message (rule editor): look the rule up by content
        record = self.current_rule.to_record()
        self.current_rule = next(
            (rule for rule in await self.store.all() if rule.to_record() == record),
            None,
        )

    async def _move_to_rule_folder(self, message: Message, rule: Rule | None) -> bool:
        subject = extract_header(message, "subject")

        if rule is None or rule.folder is None:
            logger.info("No rule found to move message", subject=subject)
            return False

        if self._mover is None:
            logger.warning("No message mover configured, cannot move", subject=subject)
            return False

        try:
            await self._mover.move([message.id], rule.folder)
        except Exception as e:
            logger.error(
                "Failed to move message",
                subject=subject,
                folder=rule.folder.path,
                error=str(e),
            )
            return False

        logger.info("Moved message", subject=subject, folder=rule.folder.path)
        return True

    # =========================================================================
    # Host message bus
    # =========================================================================

    async def handle_command(self, command: Mapping[str, Any]) -> dict[str, Any] | None:
        """Answer a command from the host's rule pages.

        Args:
            command: Mapping with a "command" key and command-specific fields

        Returns:
            The reply to send back to the host, or None when nothing is sent
        """
        if not isinstance(command, Mapping) or "command" not in command:
            return None

        name = command["command"]
        set_request_id(str(uuid.uuid4()))
        logger.info("Host command received", command=name)

        try:
            if name == "requestRule":
                return self._transmit_rule(self.current_rule)

            if name == "requestRuleUpdate":
                rule = command.get("rule")
                if rule and rule.get("index") is not None:
                    await self.update_rule(int(rule["index"]), rule)
                return None

            if name == "requestRuleDelete":
                rule = command.get("rule")
                if rule and rule.get("index") is not None:
                    rules = await self.delete_rule(int(rule["index"]))
                    return self._transmit_all_rules(rules)
                return None

            if name in ("requestAllRules", "requestRefreshList"):
                return self._transmit_all_rules(await self.list_rules())

            if name == "requestToolsImportRules":
                if "importData" not in command:
                    return None
                success = await self.import_rules(command["importData"])
                reply: dict[str, Any] = {
                    "command": "transmitToolsImportResponse",
                    "success": success,
                    "message": "Rules imported." if success else "Import failed: invalid rule list.",
                }
                if success:
                    reply["rules"] = [_tagged_record(r) for r in await self.list_rules()]
                return reply

            if name == "requestOpenRulePopup":
                rule_id = command.get("ruleId")
                if rule_id is None:
                    return None
                self.current_rule = await self.store.get(int(rule_id))
                return self._transmit_rule(self.current_rule)

            logger.warning("Unknown host command", command=name)
            return None

        except (RuleNotFoundError, RuleValidationError, ValueError, TypeError) as e:
            logger.warning("Host command rejected", command=name, error=str(e))
            return {"command": "transmitError", "request": name, "message": str(e)}
        finally:
            set_request_id(None)

    def _transmit_rule(self, rule: Rule | None) -> dict[str, Any]:
        return {
            "command": "transmitRule",
            "rule": _tagged_record(rule) if rule is not None else None,
        }

    def _transmit_all_rules(self, rules: list[Rule]) -> dict[str, Any]:
        return {
            "command": "transmitAllRules",
            "rules": [_tagged_record(rule) for rule in rules],
        }


def _tagged_record(rule: Rule) -> dict[str, Any]:
    """Record with the query-time index, for display and edit round-trips."""
    record = rule.to_record()
    record["index"] = rule.index
    return record
