"""Rule matching and rule storage.

This package provides the filing engine:
- Wildcard pattern matcher
- Header extraction (including address parsing of free-form sender text)
- Rule model and the default rule template
- Ordered, persisted rule store with CRUD and import
- First-match-wins rule evaluator
- Auto-rule creation from manual moves
"""

from mailfiler.rules.auto_create import AutoRuleCreator
from mailfiler.rules.evaluator import RuleEvaluator, rule_matches
from mailfiler.rules.headers import (
    Absent,
    HeaderValue,
    Message,
    Multiple,
    Single,
    extract_header,
    header_present,
    header_value,
    parse_email,
)
from mailfiler.rules.matcher import compile_pattern, matches
from mailfiler.rules.models import DEFAULT_RULE, FolderRef, Rule, merge_with_defaults
from mailfiler.rules.store import PersistentStore, RuleStore, validate_import

__all__ = [
    # Matching
    "compile_pattern",
    "matches",
    # Headers
    "Absent",
    "HeaderValue",
    "Message",
    "Multiple",
    "Single",
    "extract_header",
    "header_present",
    "header_value",
    "parse_email",
    # Models
    "DEFAULT_RULE",
    "FolderRef",
    "Rule",
    "merge_with_defaults",
    # Store
    "PersistentStore",
    "RuleStore",
    "validate_import",
    # Evaluation
    "RuleEvaluator",
    "rule_matches",
    "AutoRuleCreator",
]
