"""First-match-wins rule evaluation.

Rules are evaluated in store order. A rule qualifies when it has at least
one active field and every active field matches: the header must be present
and its extracted value must match the rule's wildcard pattern. The first
active field that fails disqualifies the rule. Rules without active fields
never match.

Evaluation is a pure query. It never raises: malformed messages and store
read failures are logged and reported as "no rule".

Usage:
    from mailfiler.rules.evaluator import RuleEvaluator

    evaluator = RuleEvaluator(rule_store)
    rule = await evaluator.find_rule(message)
    if rule:
        # rule.index and rule.folder are set
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from mailfiler.core.logging import get_logger
from mailfiler.rules.headers import Message, as_message, extract_header
from mailfiler.rules.matcher import matches
from mailfiler.rules.models import Rule
from mailfiler.rules.store import RuleStore

logger = get_logger(__name__)


def rule_matches(rule: Rule, message: Message) -> bool:
    """Check one rule against one message.

    Args:
        rule: Rule to test
        message: Normalized message

    Returns:
        True if the rule has active fields and all of them match
    """
    active = rule.active_patterns()
    if not active:
        return False

    for field_name, pattern in active:
        if message.header(field_name).first() is None:
            return False
        if not matches(extract_header(message, field_name), pattern):
            return False

    return True


class RuleEvaluator:
    """Finds the rule that applies to a message."""

    def __init__(self, store: RuleStore):
        self._store = store

    async def find_rule(self, message: Message | Mapping[str, Any]) -> Rule | None:
        """Return the lowest-index rule matching message, or None.

        Args:
            message: Message or the host's plain message mapping

        Returns:
            The matching rule with `index` attached, or None
        """
        try:
            rules = await self._store.all()
            normalized = as_message(message)

            for rule in rules:
                if rule_matches(rule, normalized):
                    logger.debug(
                        "Rule matched",
                        index=rule.index,
                        folder=rule.folder.path if rule.folder else None,
                    )
                    return rule

        except Exception as e:
            logger.warning(
                "Rule evaluation failed, treating as no match",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        return None
