import pytest

from vox_smoke.config import AppConfig
from vox_smoke.protocol import OutboundCallError, OutboundProvider
from vox_smoke.sink import JsonlSink
from vox_smoke.tracker import CallTracker


class FakeProvider(OutboundProvider):
    """Records requests instead of dialing; fails for numbers in ``fail_for``."""

    def __init__(self, fail_for=()):
        self.requests = []
        self.fail_for = set(fail_for)

    async def start_call(self, request):
        self.requests.append(request)
        if request.destination in self.fail_for:
            raise OutboundCallError(f"Vox StartScenarios failed: HTTP 500 - {request.destination}")


@pytest.fixture
def sink(tmp_path):
    return JsonlSink(tmp_path / "out")


@pytest.fixture
def tracker(sink):
    return CallTracker(sink)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def sample_config(tmp_path):
    return AppConfig.model_validate({
        "provider": {
            "type": "voximplant",
            "account_id": "acc-1",
            "api_key": "vox-key",
            "application_id": "app-1",
            "scenario_name": "smoke_test",
            "rule_name": "smoke_test_rule",
            "caller_id": "+7 (999) 000-00-00",
        },
        "public_base_url": "https://smoke.example.com/",
        "out_dir": str(tmp_path / "out"),
        "test_numbers": "+79990000001, 79990000002",
        "batch": {"repeat": 1, "min_delay_sec": 0, "max_delay_sec": 0, "daily_cap": 5},
    })


@pytest.fixture
def make_provider():
    return FakeProvider
