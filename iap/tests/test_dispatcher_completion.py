"""
Completion-channel contract tests.

Covers the two invariants the dispatcher itself enforces:

    - a completion callback is never invoked before the call returns,
      including for failures detectable from the arguments alone
    - the callback and deferred styles yield equivalent outcomes
"""

from __future__ import annotations

import asyncio

import pytest

from iap.app.dispatcher.dispatcher import Dispatcher
from iap.app.errors import (
    InputValidationError,
    UnknownPlatformError,
    UnsupportedOperationError,
)
from iap.app.registry.registry import EngineRegistry
from iap.app.schemas.operations import Operation
from iap.tests.fixtures.fake_engines import CallbackRecorder, FakeEngine

pytestmark = pytest.mark.anyio


async def _outcome_of(awaitable):
    try:
        return None, await awaitable
    except Exception as exc:
        return exc, None


CASES = [
    pytest.param(
        lambda d, cb: d.verify_payment("roku", None, cb), InputValidationError,
        id="verify-missing-payment",
    ),
    pytest.param(
        lambda d, cb: d.cancel_subscription("google", "", cb), InputValidationError,
        id="cancel-missing-payment",
    ),
    pytest.param(
        lambda d, cb: d.acknowledge("google", None, cb), InputValidationError,
        id="acknowledge-missing-payment",
    ),
    pytest.param(
        lambda d, cb: d.is_cancelled(None, cb), InputValidationError,
        id="is-cancelled-missing-response",
    ),
    pytest.param(
        lambda d, cb: d.is_expired({"platform": "google"}, cb), InputValidationError,
        id="is-expired-missing-transaction-id",
    ),
    pytest.param(
        lambda d, cb: d.verify_payment("xbox", {"token": "t"}, cb),
        UnknownPlatformError,
        id="verify-unknown-platform",
    ),
    pytest.param(
        lambda d, cb: d.cancel_subscription("apple", {"receipt": "r"}, cb),
        UnsupportedOperationError,
        id="cancel-unsupported",
    ),
]


@pytest.mark.parametrize("call, error_type", CASES)
async def test_callback_never_runs_before_call_returns(dispatcher, call, error_type):
    recorder = CallbackRecorder()

    returned = call(dispatcher, recorder)

    assert returned is None
    assert recorder.calls == []

    error, result = await recorder.wait()
    assert isinstance(error, error_type)
    assert result is None


@pytest.mark.parametrize("call, error_type", CASES)
async def test_deferred_style_rejects_with_same_error(dispatcher, call, error_type):
    deferred = call(dispatcher, None)

    assert isinstance(deferred, asyncio.Task)
    assert not deferred.done()

    with pytest.raises(error_type):
        await deferred


async def test_callback_receives_stamped_result(dispatcher):
    recorder = CallbackRecorder()

    dispatcher.verify_payment("amazon", {"receipt": "abc"}, recorder)

    assert recorder.calls == []
    assert await recorder.wait() == (None, {"valid": True, "platform": "amazon"})


async def test_callback_accepted_as_keyword(dispatcher):
    recorder = CallbackRecorder()

    dispatcher.is_cancelled(
        {"platform": "google", "transaction_id": "123"}, callback=recorder
    )

    assert await recorder.wait() == (None, {"cancelled": True})


@pytest.mark.parametrize(
    "invoke",
    [
        lambda d, cb: d.verify_payment("google", {"token": "t"}, cb),
        lambda d, cb: d.verify_payment("xbox", {"token": "t"}, cb),
        lambda d, cb: d.is_expired({"platform": "google", "transaction_id": "1"}, cb),
        lambda d, cb: d.is_expired({"platform": "roku"}, cb),
        lambda d, cb: d.acknowledge("amazon", {"token": "t"}, cb),
    ],
)
async def test_both_styles_are_equivalent(dispatcher, invoke):
    recorder = CallbackRecorder()
    invoke(dispatcher, recorder)
    cb_error, cb_result = await recorder.wait()

    deferred_error, deferred_result = await _outcome_of(invoke(dispatcher, None))

    assert type(cb_error) is type(deferred_error)
    assert str(cb_error) == str(deferred_error)
    assert cb_result == deferred_result


async def test_engine_error_reaches_callback_unchanged():
    failure = ConnectionError("vendor unreachable")
    dispatcher = Dispatcher(
        EngineRegistry(
            {"google": FakeEngine(errors={Operation.VERIFY_PAYMENT: failure})}
        )
    )
    recorder = CallbackRecorder()

    dispatcher.verify_payment("google", {"token": "t"}, recorder)

    error, result = await recorder.wait()
    assert error is failure
    assert result is None


async def test_concurrent_calls_are_independent(dispatcher):
    outcomes = await asyncio.gather(
        dispatcher.verify_payment("amazon", {"receipt": "a"}),
        dispatcher.verify_payment("xbox", {"receipt": "b"}),
        dispatcher.verify_payment("roku", {"receipt": "c"}),
        return_exceptions=True,
    )

    assert outcomes[0] == {"valid": True, "platform": "amazon"}
    assert isinstance(outcomes[1], UnknownPlatformError)
    assert outcomes[2] == {"valid": True, "platform": "roku"}
