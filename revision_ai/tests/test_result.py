from revision_ai.core.errors import NetworkError, QuotaExceededError, UnexpectedError, ValidationError
from revision_ai.core.result import Failure, Result, Success


def test_success_accessors():
    r = Success(3)
    assert r.is_success and not r.is_failure
    assert r.value_or_none == 3
    assert r.error_or_none is None
    assert r.value_or(0) == 3


def test_failure_accessors():
    err = NetworkError("offline")
    r = Failure(err)
    assert r.is_failure and not r.is_success
    assert r.value_or_none is None
    assert r.error_or_none is err
    assert r.value_or(7) == 7


def test_map_and_flat_map_short_circuit_on_failure():
    calls = []

    def double(v):
        calls.append(v)
        return v * 2

    assert Success(2).map(double).value_or_none == 4
    assert Success(2).flat_map(lambda v: Success(v + 1)).value_or_none == 3
    assert Success(2).flat_map(lambda v: Failure(ValidationError("bad"))).is_failure

    failed = Failure(NetworkError("offline"))
    assert failed.map(double) == failed
    assert failed.flat_map(lambda v: Success(v)).error_or_none.message == "offline"
    assert calls == [2]


def test_map_error_only_touches_failures():
    retagged = Failure(NetworkError("offline")).map_error(lambda e: QuotaExceededError(e.message))
    assert isinstance(retagged.error_or_none, QuotaExceededError)
    assert Success(1).map_error(lambda e: QuotaExceededError("x")) == Success(1)


def test_fold_collapses_both_branches():
    render = dict(success=lambda v: f"ok:{v}", failure=lambda e: f"err:{e}")
    assert Success("x").fold(**render) == "ok:x"
    assert Failure(ValidationError("nope")).fold(**render) == "err:nope"


def test_capture_wraps_raised_exceptions():
    def explode():
        raise KeyError("missing")

    def reject():
        raise ValidationError("bad input")

    assert Result.capture(lambda a, b: a + b, 1, 2) == Success(3)
    assert isinstance(Result.capture(reject).error_or_none, ValidationError)

    wrapped = Result.capture(explode).error_or_none
    assert isinstance(wrapped, UnexpectedError)
    assert isinstance(wrapped.cause, KeyError)
