"""HTTP reachability probes."""

from typing import Optional

import requests

from n8nselfhoster.constants import DEFAULT_PROBE_TIMEOUT
from n8nselfhoster.models import ProbeResult


class ProbeService:
    """Checks whether an HTTP endpoint answers at all.

    Any HTTP response counts as reachable, including 401 from basic auth or
    a 5xx while n8n is still migrating. Only connection errors and timeouts
    are reported as unreachable. Probes never raise.
    """

    def __init__(self, logger, requests_module=requests, timeout: float = DEFAULT_PROBE_TIMEOUT):
        self.logger = logger
        self.requests = requests_module
        self.timeout = timeout

    def probe(self, url: str, timeout: Optional[float] = None) -> ProbeResult:
        effective_timeout = timeout if timeout is not None else self.timeout
        self.logger.debug("Probing %s (timeout %.1fs)", url, effective_timeout)

        try:
            response = self.requests.get(url, timeout=effective_timeout, allow_redirects=False)
        except self.requests.Timeout as exc:
            self.logger.debug("Probe timed out for %s: %s", url, exc)
            return ProbeResult(url=url, reachable=False, error=str(exc), timed_out=True)
        except self.requests.RequestException as exc:
            self.logger.debug("Probe failed for %s: %s", url, exc)
            return ProbeResult(url=url, reachable=False, error=str(exc))

        status_code = response.status_code
        response.close()
        return ProbeResult(url=url, reachable=True, status_code=status_code)
