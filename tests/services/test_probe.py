import requests

from n8nselfhoster.services.probe import ProbeService


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.closed = False

    def close(self):
        self.closed = True


class FakeRequestsModule:
    Timeout = requests.Timeout
    RequestException = requests.RequestException

    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def test_any_http_response_counts_as_reachable():
    fake = FakeRequestsModule(FakeResponse(401))
    service = ProbeService(logger=DummyLogger(), requests_module=fake, timeout=5)

    result = service.probe("http://localhost:5678/")

    assert result.reachable
    assert result.status_code == 401
    assert fake.calls[0][1]["timeout"] == 5


def test_timeout_is_reported_not_raised():
    fake = FakeRequestsModule(requests.ConnectTimeout("slow"))
    service = ProbeService(logger=DummyLogger(), requests_module=fake)

    result = service.probe("http://100.64.1.5:5678/", timeout=1)

    assert not result.reachable
    assert result.timed_out


def test_connection_error_is_unreachable():
    fake = FakeRequestsModule(requests.ConnectionError("refused"))
    service = ProbeService(logger=DummyLogger(), requests_module=fake)

    result = service.probe("http://localhost:5678/")

    assert not result.reachable
    assert not result.timed_out
    assert "refused" in result.error
