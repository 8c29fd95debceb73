"""Code sandbox service."""

from __future__ import annotations

import requests


class SandboxError(Exception):
    """Raised when the sandbox answers with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"HTTP error! status: {status_code}, message: {message}")


def run_code_in_sandbox(code: str, url: str, timeout: int = 300) -> str:
    """Execute Python code in the sandbox at ``url`` and return its output.

    Raises:
        SandboxError: If the sandbox rejects the request
    """
    response = requests.post(
        f"{url.rstrip('/')}/execute",
        data=code.encode(),
        headers={"Content-Type": "text/plain"},
        timeout=timeout,
    )
    if not response.ok:
        raise SandboxError(response.status_code, response.text)
    return response.text
