"""OptimizationEngine: rule-based recommendations over measured test facts.

A rule's condition is a conjunction of ``fact op value`` clauses::

    test_duration > 30s AND parallel_safe = true

Operators: ``>``, ``>=``, ``<``, ``<=``, ``=`` (or ``==``), ``!=``. Values are
numbers, durations (``500ms``, ``30s``, ``2m``, ``1h``; compared in seconds),
``true``/``false`` or bare words. A clause over a fact the target lacks is
false.

Each application records the fact named by the rule's ``metric`` before and
its projected value after. When a later cycle measures the same target, the
rule's success rate and the learned pattern for its action are updated from
whether the metric actually improved.
"""

from __future__ import annotations

import dataclasses
import operator
import re
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from ..exceptions import InvalidConfigError
from ..logging_config import get_logger
from .models import LearnedPattern, OptimizationResult, OptimizationRule

logger = get_logger(__name__)

Facts = Mapping[str, Any]

_CLAUSE = re.compile(r"^\s*(\w+)\s*(>=|<=|==|!=|=|>|<)\s*(\S+)\s*$")
_DURATION_LITERAL = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)$")
_DURATION_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
}


@dataclass(frozen=True)
class Clause:
    fact: str
    op: str
    value: Any

    def matches(self, facts: Facts) -> bool:
        if self.fact not in facts:
            return False
        actual = facts[self.fact]
        expected = self.value
        if isinstance(expected, bool) or isinstance(actual, bool):
            if self.op not in ("=", "==", "!="):
                return False
            return _OPERATORS[self.op](bool(actual), bool(expected))
        if isinstance(expected, float):
            try:
                actual = float(actual)
            except (TypeError, ValueError):
                return False
        elif self.op not in ("=", "==", "!="):
            return False
        else:
            actual = str(actual)
        return _OPERATORS[self.op](actual, expected)


def _literal(text: str) -> Any:
    lowered = text.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    match = _DURATION_LITERAL.match(text)
    if match:
        return float(match.group(1)) * _DURATION_SECONDS[match.group(2)]
    try:
        return float(text)
    except ValueError:
        return text


def parse_condition(condition: str) -> tuple[Clause, ...]:
    """Parse ``fact op value [AND ...]``.

    Raises:
        InvalidConfigError: A clause is malformed
    """
    clauses = []
    for part in re.split(r"\s+AND\s+", condition.strip(), flags=re.IGNORECASE):
        match = _CLAUSE.match(part)
        if match is None:
            raise InvalidConfigError("condition", condition, f"cannot parse clause {part!r}")
        fact, op, value = match.groups()
        clauses.append(Clause(fact, op, _literal(value)))
    return tuple(clauses)


def default_rules() -> list[OptimizationRule]:
    return [
        OptimizationRule(
            id="parallel_execution",
            name="Enable Parallel Test Execution",
            condition="test_duration > 30s AND parallel_safe = true",
            action="add_parallel_flag",
            priority=1,
            success_rate=85.0,
            metadata={"type": "performance", "metric": "test_duration", "expected_improvement": 40.0},
        ),
        OptimizationRule(
            id="table_driven_optimization",
            name="Convert to Table-Driven Tests",
            condition="similar_tests > 3",
            action="convert_to_table_driven",
            priority=2,
            success_rate=90.0,
            metadata={"type": "maintainability", "metric": "similar_tests", "target_value": 1.0},
        ),
    ]


class OptimizationEngine:
    """Applies prioritized rules to per-target facts and learns from outcomes."""

    def __init__(
        self,
        rules: Optional[Iterable[OptimizationRule]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._rules: list[OptimizationRule] = []
        self._conditions: dict[str, tuple[Clause, ...]] = {}
        self._pending: dict[tuple[str, str], OptimizationResult] = {}
        self._outcomes: dict[str, tuple[int, int]] = {}  # rule id -> (improved, measured)
        self._learned: dict[str, LearnedPattern] = {}
        for rule in default_rules() if rules is None else rules:
            self.add_rule(rule)

    def add_rule(self, rule: OptimizationRule) -> None:
        """Add or replace a rule; its condition is validated here."""
        clauses = parse_condition(rule.condition)
        with self._lock:
            self._rules = [r for r in self._rules if r.id != rule.id] + [rule]
            self._rules.sort(key=lambda r: (r.priority, r.id))
            self._conditions[rule.id] = clauses

    def set_enabled(self, rule_id: str, enabled: bool) -> None:
        with self._lock:
            self._rules = [dataclasses.replace(r, enabled=enabled) if r.id == rule_id else r for r in self._rules]

    def rules(self) -> list[OptimizationRule]:
        with self._lock:
            return list(self._rules)

    def learned_patterns(self) -> list[LearnedPattern]:
        with self._lock:
            return list(self._learned.values())

    def run_optimizations(self, facts: Mapping[str, Facts]) -> list[OptimizationResult]:
        """Apply every enabled rule to every target whose facts match.

        Args:
            facts: Target name (usually a test) -> fact name -> value
        """
        now = self._clock()
        results: list[OptimizationResult] = []
        with self._lock:
            self._measure(facts, now)
            for rule in self._rules:
                if not rule.enabled:
                    continue
                clauses = self._conditions[rule.id]
                for target in sorted(facts):
                    target_facts = facts[target]
                    if not all(c.matches(target_facts) for c in clauses):
                        continue
                    result = _project(rule, target, target_facts, now)
                    self._pending[(rule.id, target)] = result
                    results.append(result)
        if results:
            logger.info(f"{len(results)} optimization recommendations")
        return results

    def _measure(self, facts: Mapping[str, Facts], now: datetime) -> None:
        """Score earlier recommendations against newly measured facts."""
        rules = {r.id: r for r in self._rules}
        for key, earlier in list(self._pending.items()):
            rule_id, target = key
            rule = rules.get(rule_id)
            metric = rule.metadata.get("metric") if rule else None
            if rule is None or metric is None or metric not in facts.get(target, {}):
                continue
            try:
                measured = float(facts[target][metric])
            except (TypeError, ValueError):
                continue
            del self._pending[key]
            improved = measured < earlier.before_value
            hits, total = self._outcomes.get(rule_id, (0, 0))
            hits, total = hits + int(improved), total + 1
            self._outcomes[rule_id] = (hits, total)
            rate = 100.0 * hits / total
            self._rules = [dataclasses.replace(r, success_rate=rate) if r.id == rule_id else r for r in self._rules]

            pattern = self._learned.get(rule.action)
            frequency = pattern.frequency + 1 if pattern else 1
            self._learned[rule.action] = LearnedPattern(
                pattern=rule.action,
                frequency=frequency,
                success_rate=rate,
                last_applied=now,
                context=rule.condition,
            )
            logger.debug(f"{rule_id} on {target}: {earlier.before_value} -> {measured} ({'improved' if improved else 'no gain'})")


def _project(rule: OptimizationRule, target: str, facts: Facts, now: datetime) -> OptimizationResult:
    metric = rule.metadata.get("metric")
    try:
        before = float(facts.get(metric, 0.0)) if metric else 0.0
    except (TypeError, ValueError):
        before = 0.0
    if "target_value" in rule.metadata:
        after = float(rule.metadata["target_value"])
    else:
        after = before * (1.0 - float(rule.metadata.get("expected_improvement", 0.0)) / 100.0)
    improvement = 100.0 * (before - after) / before if before > 0 else 0.0
    return OptimizationResult(
        rule_id=rule.id,
        rule_name=rule.name,
        target=target,
        applied=True,
        improvement_type=str(rule.metadata.get("type", "performance")),
        before_value=before,
        after_value=after,
        improvement_percent=improvement,
        timestamp=now,
    )
