"""Ordered, persisted rule list with CRUD and import.

The rule list is a single named record in a persistent store. It is loaded
lazily on first use and cached; every mutation writes the full list and
reads it back before returning, so a returned index always refers to what
is actually stored.

Order matters: the rule at the lowest index wins when several match.
Deleting a rule compacts the list, shifting every later rule down by one.

Usage:
    from mailfiler.rules.store import RuleStore

    rules = RuleStore(database_store)
    index = await rules.create({"from": "*@example.com", "activeFrom": True})
    rule = await rules.get(index)
    await rules.delete(index)
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any, Protocol

from pydantic import ValidationError

from mailfiler.core.errors import RuleNotFoundError, RuleValidationError, StoreIOError
from mailfiler.core.logging import get_logger
from mailfiler.rules.models import Rule, merge_with_defaults, missing_record_keys

logger = get_logger(__name__)

DEFAULT_RULES_KEY = "rules"


class PersistentStore(Protocol):
    """Get/set access to named records."""

    async def get_blob(self, key: str) -> Any | None: ...

    async def set_blob(self, key: str, value: Any) -> None: ...


class RuleStore:
    """Ordered mapping of index -> Rule backed by a persistent store.

    Mutations are serialized through a lock and the write itself is shielded
    from cancellation, so a cancelled caller never leaves a half-applied
    change behind.

    Attributes:
        key: Name of the record holding the rule list
    """

    def __init__(self, backend: PersistentStore, key: str = DEFAULT_RULES_KEY):
        self._backend = backend
        self.key = key
        self._rules: list[Rule] | None = None
        self._lock = asyncio.Lock()

    # =========================================================================
    # Loading and persistence
    # =========================================================================

    async def ensure_loaded(self) -> None:
        """Load the rule list from the backend unless it is already cached."""
        if self._rules is None:
            await self.reload()

    async def reload(self) -> None:
        """Re-read the rule list from the backend.

        Raises:
            StoreIOError: If the backend fails or the stored record is malformed
        """
        records = await self._backend.get_blob(self.key)
        if records is None:
            self._rules = []
            return

        if not isinstance(records, list):
            raise StoreIOError(
                f"Stored record '{self.key}' must be a list of rules, "
                f"got {type(records).__name__}. Re-import an exported rule list."
            )

        try:
            self._rules = [Rule.model_validate(_strip_index(record)) for record in records]
        except ValidationError as e:
            raise StoreIOError(
                f"Stored record '{self.key}' holds a malformed rule: {e}. "
                "Re-import an exported rule list."
            ) from e

        logger.debug("Rules loaded", key=self.key, count=len(self._rules))

    async def _persist(self, rules: list[Rule]) -> None:
        """Write the full list, then reload it to confirm what was stored."""
        records = [rule.to_record() for rule in rules]
        write = asyncio.ensure_future(self._write_and_reload(records))
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            # the caller holds the mutation lock; keep it until the write lands
            await asyncio.wait({write})
            if not write.cancelled() and write.exception() is not None:
                logger.error(
                    "Rule list write failed after cancellation",
                    key=self.key,
                    error=str(write.exception()),
                )
            raise

    async def _write_and_reload(self, records: list[dict[str, Any]]) -> None:
        await self._backend.set_blob(self.key, records)
        await self.reload()

    def _cached(self) -> list[Rule]:
        assert self._rules is not None, "ensure_loaded() must run first"
        return self._rules

    def _check_index(self, index: int) -> None:
        size = len(self._cached())
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < size:
            raise RuleNotFoundError(index, size)

    # =========================================================================
    # Queries
    # =========================================================================

    async def all(self) -> list[Rule]:
        """Return every rule, in order, tagged with its index."""
        await self.ensure_loaded()
        return [rule.with_index(i) for i, rule in enumerate(self._cached())]

    async def count(self) -> int:
        await self.ensure_loaded()
        return len(self._cached())

    async def get(self, index: int) -> Rule:
        """Return the rule at index, tagged with that index.

        Raises:
            RuleNotFoundError: If index is outside the current list
        """
        await self.ensure_loaded()
        self._check_index(index)
        return self._cached()[index].with_index(index)

    async def export(self) -> list[dict[str, Any]]:
        """Return the rule list as plain records, ready for JSON export."""
        await self.ensure_loaded()
        return [rule.to_record() for rule in self._cached()]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create(self, partial: Mapping[str, Any] | Rule) -> int:
        """Append a rule built from partial over the default template.

        Returns:
            Index of the new rule

        Raises:
            RuleValidationError: If a field has the wrong type
            StoreIOError: If the rule list cannot be written
        """
        async with self._lock:
            await self.ensure_loaded()
            rule = _build_rule(partial)
            await self._persist([*self._cached(), rule])
            index = len(self._cached()) - 1

        logger.info(
            "Rule created",
            index=index,
            folder=rule.folder.path if rule.folder else None,
        )
        return index

    async def update(self, index: int, partial: Mapping[str, Any] | Rule) -> int:
        """Replace the rule at index with partial merged over the default template.

        Fields not given fall back to template defaults, not to the old rule.

        Returns:
            The index that was updated

        Raises:
            RuleNotFoundError: If index is outside the current list
            RuleValidationError: If a field has the wrong type
            StoreIOError: If the rule list cannot be written
        """
        async with self._lock:
            await self.ensure_loaded()
            self._check_index(index)
            rule = _build_rule(partial)
            rules = list(self._cached())
            rules[index] = rule
            await self._persist(rules)

        logger.info("Rule updated", index=index)
        return index

    async def delete(self, index: int) -> int:
        """Remove the rule at index and compact the list.

        Every rule after index moves down by one position.

        Returns:
            The index that was deleted

        Raises:
            RuleNotFoundError: If index is outside the current list
            StoreIOError: If the rule list cannot be written
        """
        async with self._lock:
            await self.ensure_loaded()
            self._check_index(index)
            rules = [rule for i, rule in enumerate(self._cached()) if i != index]
            await self._persist(rules)

        logger.info("Rule deleted", index=index, remaining=len(rules))
        return index

    async def import_rules(self, payload: Any) -> bool:
        """Replace the whole rule list with an imported one.

        Nothing is changed unless every element is valid.

        Returns:
            True if the list was replaced, False if the payload was rejected

        Raises:
            StoreIOError: If the rule list cannot be written
        """
        try:
            rules = validate_import(payload)
        except RuleValidationError as e:
            logger.warning("Rule import rejected", position=e.position, error=str(e))
            return False

        async with self._lock:
            await self._persist(rules)

        logger.info("Rules imported", count=len(rules))
        return True


def validate_import(payload: Any) -> list[Rule]:
    """Validate an import payload and convert it to rules.

    Raises:
        RuleValidationError: If the payload is not a list, or an element
            lacks a required key or fails validation
    """
    if not isinstance(payload, list):
        raise RuleValidationError(
            f"Import payload must be a list of rules, got {type(payload).__name__}"
        )

    rules: list[Rule] = []
    for position, record in enumerate(payload):
        missing = missing_record_keys(record)
        if missing:
            raise RuleValidationError(
                f"Rule #{position} is missing required field(s): {', '.join(missing)}",
                position=position,
            )
        try:
            rules.append(Rule.model_validate(_strip_index(record)))
        except ValidationError as e:
            raise RuleValidationError(
                f"Rule #{position} is invalid: {e}", position=position
            ) from e

    return rules


def _build_rule(partial: Mapping[str, Any] | Rule) -> Rule:
    try:
        return merge_with_defaults(partial)
    except ValidationError as e:
        raise RuleValidationError(f"Invalid rule: {e}") from e


def _strip_index(record: Any) -> Any:
    # older exports carry the query-time index; it is never authoritative
    if isinstance(record, Mapping) and "index" in record:
        return {key: value for key, value in record.items() if key != "index"}
    return record
