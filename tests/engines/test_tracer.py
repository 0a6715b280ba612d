"""Tests for the engine tracer decorator."""

from decimal import Decimal

from billing_engines.tracer import TRACE_TYPE, compute_input_fingerprint, traced_engine


@traced_engine("sample", "2.1", fingerprint_fields=("amount", "rate"))
def _sample(amount, rate, note=None):
    return amount * rate


class TestInputFingerprint:
    """Tests for deterministic fingerprints."""

    def test_deterministic(self):
        args = {"amount": Decimal("1.5"), "rate": Decimal("15")}
        assert compute_input_fingerprint(("amount", "rate"), args) == compute_input_fingerprint(
            ("amount", "rate"), dict(args)
        )

    def test_decimal_scale_ignored(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("1.50")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("1.5")})
        assert a == b

    def test_different_values_differ(self):
        a = compute_input_fingerprint(("amount",), {"amount": Decimal("1")})
        b = compute_input_fingerprint(("amount",), {"amount": Decimal("2")})
        assert a != b

    def test_length(self):
        assert len(compute_input_fingerprint(("x",), {"x": 1})) == 16


class TestTracedEngine:
    """Tests for trace emission."""

    def test_result_passes_through(self):
        assert _sample(Decimal("2"), Decimal("3")) == Decimal("6")

    def test_trace_record(self, captured_logs):
        _sample(Decimal("2"), Decimal("3"))

        traces = [r for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert len(traces) == 1
        assert traces[0]["engine_name"] == "sample"
        assert traces[0]["engine_version"] == "2.1"
        assert len(traces[0]["input_fingerprint"]) == 16

    def test_positional_and_keyword_fingerprint_match(self, captured_logs):
        _sample(Decimal("2"), Decimal("3"))
        _sample(amount=Decimal("2"), rate=Decimal("3"))

        fps = [r["input_fingerprint"] for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert fps[0] == fps[1]

    def test_unlisted_argument_does_not_change_fingerprint(self, captured_logs):
        _sample(Decimal("2"), Decimal("3"), note="a")
        _sample(Decimal("2"), Decimal("3"), note="b")

        fps = [r["input_fingerprint"] for r in captured_logs() if r["message"] == TRACE_TYPE]
        assert fps[0] == fps[1]
