"""Tests for feedback.classifier."""

import pytest

from core.state import CriticalIssueType, IssueCategory, Priority, Severity, TerminationType
from core.termination import CONTINUE_REASON
from feedback.classifier import (
    classify_category,
    classify_critical_type,
    classify_priority,
    classify_severity,
    classify_termination,
    extract_action,
    is_critical,
)


@pytest.mark.parametrize("comment, expected", [
    ("Possible SQL injection in the query builder", IssueCategory.SECURITY),
    ("This loop is slow on large inputs", IssueCategory.PERFORMANCE),
    ("Formatting does not follow the project convention", IssueCategory.STYLE),
    ("Off-by-one bug in the pagination", IssueCategory.LOGIC),
    ("Missing error handling around the file read", IssueCategory.ERROR_HANDLING),
    ("No test covers the empty case", IssueCategory.TESTING),
    ("Update the README with the new flag", IssueCategory.DOCUMENTATION),
    ("The architecture couples parsing and IO", IssueCategory.ARCHITECTURE),
    ("Hard to maintain as written", IssueCategory.MAINTAINABILITY),
    ("Rename x", IssueCategory.LOGIC),
])
def test_classify_category(comment, expected):
    assert classify_category(comment) is expected


def test_first_matching_category_wins():
    # mentions both security and performance
    assert classify_category("Security check is slow") is IssueCategory.SECURITY


def test_priority_from_keywords():
    assert classify_priority("This could crash the worker", IssueCategory.PERFORMANCE) is Priority.CRITICAL


def test_priority_from_category():
    assert classify_priority("Possible SQL injection", IssueCategory.SECURITY) is Priority.HIGH
    assert classify_priority("Fix formatting", IssueCategory.STYLE) is Priority.LOW


def test_priority_default():
    assert classify_priority("Consider caching this", IssueCategory.PERFORMANCE) is Priority.MEDIUM


def test_is_critical():
    assert is_critical("possible null pointer dereference")
    assert is_critical("Race condition between writers")
    assert not is_critical("Rename this helper")


@pytest.mark.parametrize("comment, expected", [
    ("SQL injection via user input", CriticalIssueType.SECURITY_VULNERABILITY),
    ("Performance bottleneck in the hot path", CriticalIssueType.PERFORMANCE_BOTTLENECK),
    ("Infinite loop when the list is empty", CriticalIssueType.INFINITE_LOOP),
    ("Returns None and the caller crashes", CriticalIssueType.NULL_POINTER),
    ("Race condition on the counter", CriticalIssueType.RACE_CONDITION),
    ("Deadlock when both locks are held", CriticalIssueType.DEADLOCK_RISK),
    ("Memory leak in the cache", CriticalIssueType.RESOURCE_LEAK),
    ("Data loss on partial writes", CriticalIssueType.DATA_CORRUPTION_RISK),
    ("Breaks compatibility with Python 3.10", CriticalIssueType.COMPATIBILITY_ISSUE),
    ("Critical: wrong branch taken", CriticalIssueType.LOGIC_ERROR),
])
def test_classify_critical_type(comment, expected):
    assert classify_critical_type(comment) is expected


@pytest.mark.parametrize("comment, expected", [
    ("CRITICAL: possible SQL injection", Severity.BLOCKER),
    ("Security hole in token parsing", Severity.CRITICAL),
    ("Important: race on shutdown", Severity.MAJOR),
    ("possible null pointer dereference", Severity.MINOR),
])
def test_classify_severity(comment, expected):
    assert classify_severity(comment) is expected


@pytest.mark.parametrize("reason, expected", [
    ("Stagnation detected: scores have plateaued", TerminationType.STAGNATION),
    ("Maximum loops (25) reached without achieving completion criteria", TerminationType.TIMEOUT),
    ("Repeated failure: 4 of the last 5 reviews were rejected", TerminationType.FAILURE),
    (CONTINUE_REASON, TerminationType.COMPLETION),
])
def test_classify_termination(reason, expected):
    assert classify_termination(reason) is expected


def test_extract_action_imperative():
    assert extract_action("You should validate the input.") == "should validate the input"


def test_extract_action_normalizes_multiword_verb():
    assert extract_action("We Need  to close the file handle") == "need to close the file handle"


def test_extract_action_fallback():
    assert extract_action("Weird naming") == "Address the issue: Weird naming"


def test_extract_action_fallback_truncates():
    action = extract_action("x" * 150)
    assert action == "Address the issue: " + "x" * 100 + "..."
