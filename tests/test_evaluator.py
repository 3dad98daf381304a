"""Tests for first-match-wins rule evaluation."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from mailfiler.core.errors import DatabaseError
from mailfiler.rules.evaluator import RuleEvaluator, rule_matches
from mailfiler.rules.headers import Message
from mailfiler.rules.models import merge_with_defaults
from mailfiler.rules.store import RuleStore

# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------


def _make_message(**overrides: Any) -> dict[str, Any]:
    """Create a host message mapping for testing."""
    message: dict[str, Any] = {
        "id": 1,
        "subject": "Invoice #1",
        "author": "Alice <alice@x.com>",
        "recipients": ["Bob <bob@y.com>"],
        "folder": {"path": "/INBOX", "accountId": "account1", "type": "inbox"},
    }
    message.update(overrides)
    return message


def _rule(**fields: Any) -> dict[str, Any]:
    fields.setdefault("folder", {"path": "/Archive", "accountId": "account1"})
    return fields


@pytest.fixture
def evaluator(rule_store: RuleStore) -> RuleEvaluator:
    return RuleEvaluator(rule_store)


# ---------------------------------------------------------------------------
# Tests: rule_matches
# ---------------------------------------------------------------------------


def test_vacuous_rule_never_matches():
    rule = merge_with_defaults({"from": "*", "to": "*", "subject": "*"})
    assert rule_matches(rule, Message.from_dict(_make_message())) is False


def test_all_active_fields_must_match():
    rule = merge_with_defaults(
        {"from": "alice", "activeFrom": True, "subject": "receipt", "activeSubject": True}
    )
    assert rule_matches(rule, Message.from_dict(_make_message())) is False


def test_later_matching_field_does_not_rescue_failed_field():
    """A failing active field disqualifies the rule even if a later one matches."""
    rule = merge_with_defaults(
        {
            "from": "alice",
            "activeFrom": True,
            "to": "nobody",
            "activeTo": True,
            "subject": "invoice",
            "activeSubject": True,
        }
    )
    assert rule_matches(rule, Message.from_dict(_make_message())) is False


def test_inactive_fields_are_ignored():
    rule = merge_with_defaults({"from": "alice", "activeFrom": True, "subject": "no such thing"})
    assert rule_matches(rule, Message.from_dict(_make_message())) is True


def test_active_field_with_missing_header_fails():
    rule = merge_with_defaults({"to": "*", "activeTo": True})
    assert rule_matches(rule, Message.from_dict(_make_message(recipients=[]))) is False
    assert rule_matches(rule, Message.from_dict(_make_message(recipients=None))) is False


def test_recipient_matches_first_recipient_only():
    rule = merge_with_defaults({"to": "carol@", "activeTo": True})
    message = _make_message(recipients=["bob@y.com", "carol@z.com"])
    assert rule_matches(rule, Message.from_dict(message)) is False


def test_sender_pattern_matches_extracted_address_not_display_name():
    rule = merge_with_defaults({"from": "Alice <", "activeFrom": True})
    assert rule_matches(rule, Message.from_dict(_make_message())) is False


# ---------------------------------------------------------------------------
# Tests: find_rule
# ---------------------------------------------------------------------------


async def test_lower_index_wins(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "*alice*", "activeFrom": True}))
    await rule_store.create(_rule(subject="*invoice*", activeSubject=True))

    rule = await evaluator.find_rule(_make_message(author="alice@x.com"))

    assert rule is not None
    assert rule.index == 0


async def test_skips_non_matching_rules(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "carol", "activeFrom": True}))
    await rule_store.create(_rule(subject="*invoice*", activeSubject=True))

    rule = await evaluator.find_rule(_make_message())

    assert rule is not None
    assert rule.index == 1
    assert rule.subject == "*invoice*"


async def test_vacuous_rule_is_skipped(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "alice"}))
    await rule_store.create(_rule(**{"from": "alice", "activeFrom": True}))

    rule = await evaluator.find_rule(_make_message())

    assert rule is not None
    assert rule.index == 1


async def test_no_rules_returns_none(evaluator: RuleEvaluator):
    assert await evaluator.find_rule(_make_message()) is None


async def test_no_match_returns_none(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "carol", "activeFrom": True}))
    assert await evaluator.find_rule(_make_message()) is None


async def test_accepts_message_objects(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "alice", "activeFrom": True}))
    rule = await evaluator.find_rule(Message.from_dict(_make_message()))
    assert rule is not None


async def test_malformed_message_yields_none(rule_store: RuleStore, evaluator: RuleEvaluator):
    await rule_store.create(_rule(**{"from": "alice", "activeFrom": True}))

    assert await evaluator.find_rule(_make_message(author=12345)) is None
    assert await evaluator.find_rule(["not", "a", "message"]) is None  # type: ignore[arg-type]


async def test_store_failure_yields_none():
    backend = AsyncMock()
    backend.get_blob.side_effect = DatabaseError("database is locked")
    evaluator = RuleEvaluator(RuleStore(backend))

    assert await evaluator.find_rule(_make_message()) is None
