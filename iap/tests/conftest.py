import pytest

from iap.app.dispatcher.dispatcher import Dispatcher
from iap.app.registry.registry import EngineRegistry
from iap.app.schemas.operations import Operation
from iap.tests.fixtures.fake_engines import FakeEngine


@pytest.fixture
def anyio_backend():
    # The completion adapter schedules asyncio tasks.
    return "asyncio"


@pytest.fixture
def engines():
    return {
        "amazon": FakeEngine(
            [Operation.IS_CANCELLED],
            results={Operation.VERIFY_PAYMENT: {"valid": True}},
        ),
        "apple": FakeEngine(
            [Operation.IS_EXPIRED],
            results={Operation.VERIFY_PAYMENT: {"valid": True}},
        ),
        "google": FakeEngine(
            [
                Operation.CANCEL_SUBSCRIPTION,
                Operation.IS_CANCELLED,
                Operation.IS_EXPIRED,
                Operation.ACKNOWLEDGE,
            ],
            results={
                Operation.VERIFY_PAYMENT: {"valid": True},
                Operation.CANCEL_SUBSCRIPTION: {"cancelled": True},
                Operation.IS_CANCELLED: {"cancelled": True},
                Operation.IS_EXPIRED: {"expired": False},
                Operation.ACKNOWLEDGE: {"acknowledged": True},
            },
        ),
        "roku": FakeEngine(
            [Operation.IS_CANCELLED, Operation.IS_EXPIRED],
            results={Operation.VERIFY_PAYMENT: {"valid": True}},
        ),
    }


@pytest.fixture
def dispatcher(engines):
    return Dispatcher(EngineRegistry(engines))
