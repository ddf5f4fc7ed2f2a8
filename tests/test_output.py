"""Tests for deferred values (Output).

This module tests:
- Resolved and pending apply() behavior
- Failure contagion and TransformError capture
- Associativity of transform composition
- Sensitivity propagation and masking
- Idempotent resolution
- Combinators (all, concat, item access) and nested input helpers
"""

import pytest

from stackwork.errors import TransformError
from stackwork.output import (
    SECRET_PLACEHOLDER,
    Output,
    OutputState,
    find_outputs,
    is_sensitive,
    redact,
    unwrap,
)
from stackwork.resources import ResourceId


def promised(field: str = "status", name: str = "svc") -> Output:
    """A pending Output as a resource would promise it."""
    return Output(origin=(ResourceId("Service", name), field))


class TestApply:
    """Tests for apply() on resolved and pending values."""

    def test_of_is_resolved(self):
        """Test Output.of wraps a known value."""
        output = Output.of("cert")

        assert output.is_resolved
        assert output.value == "cert"
        assert not output.sensitive

    def test_of_returns_outputs_unchanged(self):
        """Test Output.of does not re-wrap an Output."""
        output = promised()
        assert Output.of(output) is output

    def test_apply_on_resolved_runs_immediately(self):
        """Test apply() on a resolved value resolves at once."""
        result = Output.of(2).apply(lambda x: x * 3)

        assert result.is_resolved
        assert result.value == 6

    def test_apply_on_pending_defers(self):
        """Test apply() on a pending value waits for resolution."""
        calls = []
        source = promised()
        derived = source.apply(lambda x: calls.append(x) or x + 1)

        assert derived.is_pending
        assert calls == []

        source.resolve(1)

        assert derived.value == 2
        assert calls == [1]

    def test_pending_value_access_raises(self):
        """Test reading the value of a pending Output raises ValueError."""
        with pytest.raises(ValueError, match="not resolved"):
            promised().value

    def test_transform_error_is_captured(self):
        """Test a raising transform yields a failed Output instead of raising."""
        result = Output.of(1).apply(lambda x: x / 0)

        assert result.is_failed
        assert isinstance(result.error, TransformError)
        assert isinstance(result.error.__cause__, ZeroDivisionError)
        with pytest.raises(TransformError):
            result.value

    def test_transform_returning_output_fails(self):
        """Test transforms may not return Outputs (the graph is static)."""
        result = Output.of(1).apply(lambda x: Output.of(x))

        assert result.is_failed
        assert isinstance(result.error, TransformError)
        assert "Output.all" in str(result.error)


class TestContagion:
    """Tests for failure propagating downstream."""

    def test_failure_propagates_without_running_transforms(self):
        """Test failed sources fail derived values and skip their transforms."""
        calls = []
        source = promised()
        first = source.apply(lambda x: calls.append("f") or x)
        second = first.apply(lambda x: calls.append("g") or x)

        error = RuntimeError("provisioning failed")
        source.reject(error)

        assert first.is_failed
        assert second.is_failed
        assert second.error is error
        assert calls == []

    def test_apply_on_failed_value(self):
        """Test apply() on an already failed Output fails immediately."""
        error = RuntimeError("boom")
        result = Output.failed(error).apply(lambda x: x)

        assert result.is_failed
        assert result.error is error

    def test_failure_never_propagates_upstream(self):
        """Test a failing transform leaves its source resolved."""
        source = Output.of(1)
        source.apply(lambda x: x / 0)

        assert source.is_resolved
        assert source.value == 1


class TestComposition:
    """Tests for associativity of apply()."""

    @staticmethod
    def f(x):
        return x + 1

    @staticmethod
    def g(x):
        return x * 2

    def test_chained_equals_composed_resolved(self):
        """Test apply(f).apply(g) equals apply(g∘f) on resolved values."""
        chained = Output.of(3).apply(self.f).apply(self.g)
        composed = Output.of(3).apply(lambda x: self.g(self.f(x)))

        assert chained.value == composed.value == 8

    def test_chained_equals_composed_pending(self):
        """Test associativity holds when the source resolves later."""
        source = promised()
        chained = source.apply(self.f).apply(self.g)
        composed = source.apply(lambda x: self.g(self.f(x)))

        source.resolve(5)

        assert chained.value == composed.value == 12

    @pytest.mark.parametrize("failing", ["f", "g"])
    def test_chained_equals_composed_on_failure(self, failing):
        """Test chained and composed transforms fail the same way."""

        def boom(x):
            raise KeyError("missing")

        f = boom if failing == "f" else self.f
        g = boom if failing == "g" else self.g

        chained = Output.of(3).apply(f).apply(g)
        composed = Output.of(3).apply(lambda x: g(f(x)))

        assert chained.is_failed and composed.is_failed
        assert type(chained.error) is type(composed.error) is TransformError
        assert type(chained.error.__cause__) is type(composed.error.__cause__) is KeyError
        assert str(chained.error) == str(composed.error)


class TestSensitivity:
    """Tests for the sensitive flag."""

    def test_secret_propagates_through_apply(self):
        """Test every value derived from a secret is sensitive."""
        root = Output.secret("private-key")
        derived = root.apply(str.upper).apply(len)

        assert root.sensitive
        assert derived.sensitive

    def test_marking_root_marks_existing_derivations(self):
        """Test marking a root secret after deriving still propagates."""
        root = promised("private_key_pem")
        derived = root.apply(str.upper)

        root.mark_secret()

        assert derived.sensitive

    def test_as_secret_is_one_way(self):
        """Test as_secret() output stays sensitive through further derivations."""
        derived = Output.of("token").as_secret().apply(lambda v: v + "!")

        assert derived.sensitive
        assert derived.value == "token!"

    def test_repr_masks_sensitive_values(self):
        """Test repr never shows a sensitive value."""
        output = Output.secret("hunter2")

        assert "hunter2" not in repr(output)
        assert SECRET_PLACEHOLDER in repr(output)
        assert repr(Output.of("visible")) == "Output('visible')"

    def test_transform_error_on_secret_hides_message(self):
        """Test transform errors on secret values omit the exception text."""
        output = Output.secret("hunter2").apply(lambda v: int(v))

        assert output.is_failed
        assert "hunter2" not in str(output.error)

    def test_all_is_sensitive_if_any_input_is(self):
        """Test Output.all inherits sensitivity from any input."""
        combined = Output.all(Output.of("a"), Output.secret("b"))
        assert combined.sensitive


class TestResolution:
    """Tests for monotonic resolution."""

    def test_second_resolution_is_noop(self):
        """Test resolving twice keeps the first value and runs transforms once."""
        calls = []
        source = promised()
        derived = source.apply(lambda x: calls.append(x) or x)

        assert source.resolve(1) is True
        assert source.resolve(2) is False
        assert source.reject(RuntimeError("late")) is False

        assert source.value == 1
        assert derived.value == 1
        assert calls == [1]
        assert source.state is OutputState.RESOLVED

    def test_reject_then_resolve_is_noop(self):
        """Test a failed Output cannot be resolved afterwards."""
        source = promised()
        source.reject(RuntimeError("boom"))

        assert source.resolve(1) is False
        assert source.is_failed


class TestLongChains:
    """Tests for derivation chains thousands of links long."""

    def test_resolving_long_pending_chain(self):
        """Test resolving the root settles every link of a long chain."""
        source = promised("n")
        value = source
        for _ in range(2000):
            value = value.apply(lambda v: v + 1)

        source.resolve(0)

        assert value.value == 2000

    def test_rejecting_long_pending_chain(self):
        """Test a failure reaches the end of a long chain."""
        source = promised("n")
        value = source
        for _ in range(2000):
            value = value.apply(lambda v: v + 1)
        error = RuntimeError("boom")

        source.reject(error)

        assert value.error is error

    def test_sensitivity_through_long_chain(self):
        """Test sensitivity is found through a long chain."""
        root = promised("private_key_pem")
        value = root
        for _ in range(2000):
            value = value.apply(str)

        assert not value.sensitive
        root.mark_secret()
        assert value.sensitive


class TestCombinators:
    """Tests for Output.all, Output.concat and item access."""

    def test_all_waits_for_every_input(self):
        """Test Output.all resolves once all inputs resolve."""
        host = promised("host")
        combined = Output.all(host, 9443)

        assert combined.is_pending

        host.resolve("10.0.0.7")

        assert combined.value == ["10.0.0.7", 9443]

    def test_all_fails_with_first_failure(self):
        """Test Output.all fails when any input fails."""
        a, b = promised("a"), promised("b")
        combined = Output.all(a, b)
        error = RuntimeError("b failed")

        b.reject(error)

        assert combined.is_failed
        assert combined.error is error

    def test_all_without_inputs(self):
        """Test Output.all() with no inputs resolves to an empty list."""
        assert Output.all().value == []

    def test_concat(self):
        """Test Output.concat builds strings from literals and Outputs."""
        url = Output.concat("https://", Output.of("203.0.113.10"), ":", 9443)
        assert url.value == "https://203.0.113.10:9443"

    def test_item_access(self):
        """Test indexing an Output lifts item access."""
        status = Output.of({"load_balancer": {"ingress": [{"ip": "203.0.113.10"}]}})
        ip = status["load_balancer"]["ingress"][0]["ip"]

        assert ip.value == "203.0.113.10"

    def test_outputs_are_not_iterable(self):
        """Test iterating an Output raises instead of looping forever."""
        with pytest.raises(TypeError, match="not iterable"):
            list(Output.of([1, 2]))


class TestOrigins:
    """Tests for tracing values back to their producing resources."""

    def test_origins_through_chains(self):
        """Test origins are found through apply and all chains."""
        ping = promised("status", "ping")
        pong = promised("status", "pong")
        combined = Output.all(ping.apply(str), pong["ip"]).apply(tuple)

        assert combined.origins() == {
            ResourceId("Service", "ping"),
            ResourceId("Service", "pong"),
        }

    def test_literals_have_no_origins(self):
        """Test resolved literals depend on nothing."""
        assert Output.of(1).apply(str).origins() == set()

    def test_orphaned_pending_value(self):
        """Test a pending value without a producer is detected."""
        assert Output().apply(str).is_orphaned()
        assert not promised().apply(str).is_orphaned()
        assert not Output.of(1).is_orphaned()


class TestNestedHelpers:
    """Tests for find_outputs, unwrap and redact."""

    def test_find_outputs_nested(self):
        """Test Outputs are found inside dicts, lists and tuples."""
        a, b, c = Output.of(1), Output.of(2), Output.of(3)
        inputs = {"data": {"x": a}, "list": [b, ("t", c)], "plain": 4}

        assert find_outputs(inputs) == [a, b, c]

    def test_unwrap_nested(self):
        """Test unwrap replaces Outputs and preserves structure."""
        inputs = {"data": {"tls.crt": Output.of("Y2VydA==")}, "ports": [Output.of(8443), 9443]}

        assert unwrap(inputs) == {"data": {"tls.crt": "Y2VydA=="}, "ports": [8443, 9443]}

    def test_unwrap_failed_raises_error(self):
        """Test unwrap raises the error of a failed Output."""
        error = TransformError("bad")
        with pytest.raises(TransformError):
            unwrap({"x": Output.failed(error)})

    def test_sets(self):
        """Test Outputs inside sets are found, unwrapped and redacted."""
        name = Output.of("ca")
        key = Output.secret("pem")

        assert find_outputs({"names": {name}}) == [name]
        assert unwrap({"names": {name}, "frozen": frozenset([name])}) == {
            "names": {"ca"},
            "frozen": frozenset(["ca"]),
        }
        assert redact({"keys": {key}}) == {"keys": {SECRET_PLACEHOLDER}}

    def test_redact(self):
        """Test redact masks sensitive values only."""
        inputs = {"key": Output.secret("pem"), "name": Output.of("ca"), "bits": 2048}

        assert redact(inputs) == {"key": SECRET_PLACEHOLDER, "name": "ca", "bits": 2048}
        assert is_sensitive(inputs)
        assert not is_sensitive({"name": Output.of("ca")})
