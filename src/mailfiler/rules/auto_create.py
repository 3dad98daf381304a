"""Learn sender rules from messages the user files by hand.

When the host reports that the user moved a message and no rule covers it,
a new rule is created that files mail from the same sender into the same
folder. Only the sender pattern is enabled; recipient and subject are filled
in so the user can switch them on later.

Moves into protected folders (inbox and trash by default) are routine
housekeeping and never produce a rule.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from mailfiler.core.logging import get_logger
from mailfiler.rules.evaluator import RuleEvaluator
from mailfiler.rules.headers import Message, extract_header, try_message
from mailfiler.rules.store import RuleStore

logger = get_logger(__name__)

DEFAULT_PROTECTED_FOLDER_TYPES = ("inbox", "trash")


class AutoRuleCreator:
    """Creates default rules from observed manual moves."""

    def __init__(
        self,
        store: RuleStore,
        evaluator: RuleEvaluator,
        protected_folder_types: Iterable[str] = DEFAULT_PROTECTED_FOLDER_TYPES,
    ):
        self._store = store
        self._evaluator = evaluator
        self.protected_folder_types = frozenset(t.lower() for t in protected_folder_types)

    def is_protected(self, message: Message) -> bool:
        folder_type = message.folder_type
        return folder_type is not None and folder_type.lower() in self.protected_folder_types

    async def observe_move(self, message: Message | Mapping[str, Any]) -> int | None:
        """Handle one message the user moved.

        Returns:
            Index of the created rule, or None if a rule already covers the
            message, the destination is protected or the message is malformed
        """
        message = try_message(message)
        if message is None:
            return None
        subject = extract_header(message, "subject")

        existing = await self._evaluator.find_rule(message)
        if existing is not None:
            logger.info("Rule already exists for moved message", subject=subject, index=existing.index)
            return None

        return await self.create_default_rule(message)

    async def create_default_rule(self, message: Message | Mapping[str, Any]) -> int | None:
        """Create a sender -> folder rule for message.

        Returns:
            Index of the created rule, or None for protected or missing destinations
        """
        message = try_message(message)
        if message is None:
            return None
        subject = extract_header(message, "subject")

        if message.folder is None:
            logger.warning("Moved message has no destination folder", subject=subject)
            return None

        if self.is_protected(message):
            logger.warning(
                "Ignored protected folder destination",
                folder_type=message.folder_type,
                subject=subject,
            )
            return None

        logger.info("Creating default rule for moved message", subject=subject)

        return await self._store.create(
            {
                "activeFrom": True,
                "from": extract_header(message, "sender"),
                "to": extract_header(message, "recipient"),
                "subject": subject,
                "folder": message.folder,
            }
        )

    async def handle_moved_messages(
        self, messages: Iterable[Message | Mapping[str, Any]]
    ) -> list[int]:
        """Observe a batch of moved messages.

        Returns:
            Indices of the rules created, in creation order
        """
        created: list[int] = []
        for message in messages:
            index = await self.observe_move(message)
            if index is not None:
                created.append(index)
        return created
