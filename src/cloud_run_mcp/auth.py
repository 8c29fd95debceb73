"""Google Cloud credential helpers.

The server checks for Application Default Credentials once at start-up;
tools that need Google Cloud access are disabled when none are usable.
"""

from __future__ import annotations

import google.auth
from google.auth.credentials import Credentials
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.auth.transport.requests import Request
from loguru import logger as log

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


def load_credentials() -> tuple[Credentials, str | None]:
    """Load Application Default Credentials with a fresh access token.

    Raises:
        DefaultCredentialsError: If no credentials are configured
        GoogleAuthError: If the credentials cannot produce an access token
    """
    credentials, project_id = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
    if not credentials.valid:
        credentials.refresh(Request())
    return credentials, project_id


def ensure_gcp_credentials() -> bool:
    """Check whether Application Default Credentials are set up and usable.

    Returns:
        True if an access token could be obtained, False otherwise
    """
    log.info("Checking for Google Cloud Application Default Credentials...")
    try:
        load_credentials()
    except DefaultCredentialsError as e:
        log.error(f"Google Cloud Application Default Credentials are not set up: {e}")
        _log_setup_hints()
        return False
    except GoogleAuthError as e:
        log.error(
            "Credential verification failed. This often means misconfigured or expired "
            f"credentials, or a network issue: {e}"
        )
        _log_setup_hints()
        return False

    log.info("Application Default Credentials found.")
    return True


def _log_setup_hints() -> None:
    log.error("For more details or alternative setup methods, consider:")
    log.error("1. If running locally, run: gcloud auth application-default login.")
    log.error(
        "2. Ensuring the `GOOGLE_APPLICATION_CREDENTIALS` environment variable points "
        "to a valid service account key file."
    )
    log.error(
        "3. If on a Google Cloud environment (e.g., GCE, Cloud Run), verify the "
        "associated service account has necessary permissions."
    )
