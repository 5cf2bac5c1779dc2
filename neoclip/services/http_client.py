import logging
from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, Field

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 300


class HttpTransportError(Exception):
    """Raised when a request never produced an HTTP response."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class HttpResponse(BaseModel):
    """Outcome of an outbound request. Non-JSON bodies leave data empty."""

    status_code: int
    data: Dict[str, Any] = Field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def snippet(self) -> str:
        return self.text[:SNIPPET_LENGTH]

    @property
    def error(self) -> Optional[str]:
        if self.ok:
            return None
        for key in ("error", "detail", "message"):
            value = self.data.get(key)
            if value:
                return value if isinstance(value, str) else str(value)
        return f"HTTP {self.status_code}"


def make_request(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout: float = 30.0,
) -> HttpResponse:
    """Send a JSON request with a timeout.

    Raises:
        HttpTransportError: on timeout or connection failure
    """
    try:
        response = requests.request(
            method,
            url,
            headers={"Content-Type": "application/json", **(headers or {})},
            json=json_body,
            timeout=timeout,
        )
    except requests.Timeout as e:
        raise HttpTransportError(
            f"Request timeout after {timeout}s", timed_out=True
        ) from e
    except requests.RequestException as e:
        raise HttpTransportError(f"Request failed: {str(e)}") from e

    text = response.text or ""
    data: Dict[str, Any] = {}
    if text:
        try:
            parsed = response.json()
        except ValueError:
            logger.warning(f"Response not JSON: {text[:200]}")
        else:
            # Some endpoints answer with a bare list or scalar
            data = parsed if isinstance(parsed, dict) else {"data": parsed}

    return HttpResponse(status_code=response.status_code, data=data, text=text)
