"""Tests for learning sender rules from manual moves."""

from typing import Any

import pytest

from mailfiler.rules.auto_create import AutoRuleCreator
from mailfiler.rules.evaluator import RuleEvaluator
from mailfiler.rules.store import RuleStore

# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def _make_moved_message(
    folder_type: str | None = None,
    path: str = "/Archive/Invoices",
    **overrides: Any,
) -> dict[str, Any]:
    """Create a host message that now sits in its destination folder."""
    folder: dict[str, Any] = {"path": path, "accountId": "account1", "name": "Invoices"}
    if folder_type is not None:
        folder["type"] = folder_type
    message: dict[str, Any] = {
        "id": 42,
        "subject": "Invoice #1",
        "author": "Billing <billing@vendor.example.com>",
        "recipients": ["Me <me@example.org>"],
        "folder": folder,
    }
    message.update(overrides)
    return message


@pytest.fixture
def creator(rule_store: RuleStore) -> AutoRuleCreator:
    return AutoRuleCreator(rule_store, RuleEvaluator(rule_store))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


async def test_observe_move_creates_sender_rule(creator: AutoRuleCreator, rule_store: RuleStore):
    index = await creator.observe_move(_make_moved_message())

    assert index == 0
    rule = await rule_store.get(0)
    assert rule.from_ == "billing@vendor.example.com"
    assert rule.active_from is True
    assert rule.to == "me@example.org"
    assert rule.active_to is False
    assert rule.subject == "Invoice #1"
    assert rule.active_subject is False
    assert rule.folder is not None
    assert rule.folder.path == "/Archive/Invoices"
    assert rule.folder.name == "Invoices"


@pytest.mark.parametrize("folder_type", ["trash", "inbox", "Trash"])
async def test_protected_destinations_never_create_rules(
    creator: AutoRuleCreator, rule_store: RuleStore, folder_type: str
):
    assert await creator.observe_move(_make_moved_message(folder_type=folder_type)) is None
    assert await rule_store.count() == 0


async def test_other_folder_types_are_allowed(creator: AutoRuleCreator):
    assert await creator.observe_move(_make_moved_message(folder_type="archives")) == 0


async def test_existing_rule_prevents_duplicate(creator: AutoRuleCreator, rule_store: RuleStore):
    await creator.observe_move(_make_moved_message())

    assert await creator.observe_move(_make_moved_message(path="/Elsewhere")) is None
    assert await rule_store.count() == 1


async def test_missing_destination_folder_creates_nothing(
    creator: AutoRuleCreator, rule_store: RuleStore
):
    assert await creator.create_default_rule(_make_moved_message(folder=None)) is None
    assert await rule_store.count() == 0


async def test_custom_protected_types(rule_store: RuleStore):
    creator = AutoRuleCreator(rule_store, RuleEvaluator(rule_store), ["junk"])

    assert await creator.observe_move(_make_moved_message(folder_type="junk")) is None
    assert await creator.observe_move(_make_moved_message(folder_type="trash")) == 0


async def test_handle_moved_messages_returns_created_indices(creator: AutoRuleCreator):
    messages = [
        _make_moved_message(),
        _make_moved_message(),  # covered by the rule created for the first one
        _make_moved_message(author="news@list.example.com"),
        _make_moved_message(author="spam@junk.example.com", folder_type="trash"),
    ]

    assert await creator.handle_moved_messages(messages) == [0, 1]


@pytest.mark.parametrize(
    "overrides",
    [
        {"author": 12345},
        {"folder": "not-a-mapping"},
        {"recipients": {"to": "me@example.org"}},
    ],
)
async def test_malformed_message_creates_nothing(
    creator: AutoRuleCreator, rule_store: RuleStore, overrides: dict[str, Any]
):
    message = _make_moved_message(**overrides)

    assert await creator.observe_move(message) is None
    assert await creator.create_default_rule(message) is None
    assert await rule_store.count() == 0
