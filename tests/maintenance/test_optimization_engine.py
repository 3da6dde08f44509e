"""Tests for OptimizationEngine and rule conditions."""

import pytest

from testwarden.exceptions import InvalidConfigError
from testwarden.maintenance.models import OptimizationRule
from testwarden.maintenance.optimizer import OptimizationEngine, parse_condition


class TestParseCondition:
    """Condition grammar."""

    def test_conjunction(self):
        clauses = parse_condition("test_duration > 30s AND parallel_safe = true")
        assert [(c.fact, c.op, c.value) for c in clauses] == [
            ("test_duration", ">", 30.0),
            ("parallel_safe", "=", True),
        ]

    @pytest.mark.parametrize("literal,value", [("500ms", 0.5), ("2m", 120.0), ("1h", 3600.0), ("3", 3.0)])
    def test_literals(self, literal, value):
        assert parse_condition(f"x >= {literal}")[0].value == pytest.approx(value)

    def test_lowercase_and(self):
        assert len(parse_condition("a > 1 and b < 2")) == 2

    def test_malformed(self):
        with pytest.raises(InvalidConfigError):
            parse_condition("test_duration is long")


class TestClauseMatching:
    """Clause evaluation against facts."""

    def test_missing_fact_is_false(self):
        (clause,) = parse_condition("memory_mb > 10")
        assert not clause.matches({})

    def test_boolean_only_equality(self):
        (clause,) = parse_condition("parallel_safe > true")
        assert not clause.matches({"parallel_safe": True})

    def test_string_equality(self):
        (clause,) = parse_condition("suite = api")
        assert clause.matches({"suite": "api"})
        assert not clause.matches({"suite": "db"})


class TestRunOptimizations:
    """Rule application and learning."""

    def test_parallel_rule_fires_for_slow_safe_test(self, clock):
        engine = OptimizationEngine(clock=clock)
        facts = {
            "TestSlow": {"test_duration": 45.0, "parallel_safe": True},
            "TestUnsafe": {"test_duration": 45.0, "parallel_safe": False},
            "TestFast": {"test_duration": 1.0, "parallel_safe": True},
        }
        results = engine.run_optimizations(facts)

        assert [(r.rule_id, r.target) for r in results] == [("parallel_execution", "TestSlow")]
        result = results[0]
        assert result.before_value == 45.0
        assert result.after_value == pytest.approx(27.0)
        assert result.improvement_percent == pytest.approx(40.0)
        assert result.timestamp == clock()

    def test_table_rule_uses_target_value(self):
        results = OptimizationEngine().run_optimizations({"TestParse_*": {"similar_tests": 5}})
        assert len(results) == 1
        assert results[0].after_value == 1.0
        assert results[0].improvement_percent == pytest.approx(80.0)

    def test_priority_order(self):
        facts = {
            "TestA": {"test_duration": 40.0, "parallel_safe": True},
            "TestA_*": {"similar_tests": 4},
        }
        results = OptimizationEngine().run_optimizations(facts)
        assert [r.rule_id for r in results] == ["parallel_execution", "table_driven_optimization"]

    def test_disabled_rule(self):
        engine = OptimizationEngine()
        engine.set_enabled("table_driven_optimization", False)
        assert engine.run_optimizations({"TestA_*": {"similar_tests": 9}}) == []

    def test_invalid_rule_rejected(self):
        engine = OptimizationEngine(rules=[])
        with pytest.raises(InvalidConfigError):
            engine.add_rule(OptimizationRule(id="bad", name="Bad", condition="nonsense", action="x", priority=1))
        assert engine.rules() == []

    def test_learning_from_measurement(self, clock):
        engine = OptimizationEngine(clock=clock)
        slow = {"TestSlow": {"test_duration": 45.0, "parallel_safe": True}}
        engine.run_optimizations(slow)

        clock.advance(hours=1)
        engine.run_optimizations({"TestSlow": {"test_duration": 20.0, "parallel_safe": True}})

        rule = {r.id: r for r in engine.rules()}["parallel_execution"]
        assert rule.success_rate == pytest.approx(100.0)
        (pattern,) = engine.learned_patterns()
        assert pattern.pattern == "add_parallel_flag"
        assert pattern.frequency == 1
        assert pattern.last_applied == clock()

    def test_no_gain_lowers_success_rate(self):
        engine = OptimizationEngine()
        engine.run_optimizations({"TestSlow": {"test_duration": 45.0, "parallel_safe": True}})
        engine.run_optimizations({"TestSlow": {"test_duration": 50.0, "parallel_safe": True}})
        rule = {r.id: r for r in engine.rules()}["parallel_execution"]
        assert rule.success_rate == 0.0
