"""Credential policy: keyless authentication only.

The operator authenticates through Application Default Credentials backed by
workload identity or the metadata server. Service account key files are
refused at startup.

SECURITY INVARIANTS:
1. No service account key file may be configured in the environment
2. Credentials come from google.auth.default() and nothing else
"""

from __future__ import annotations

import logging
import os

import google.auth
from google.auth.credentials import Credentials

logger = logging.getLogger(__name__)

# Environment variables that point the Google auth libraries at key material
FORBIDDEN_CREDENTIAL_ENV_VARS: tuple[str, ...] = (
    "GOOGLE_APPLICATION_CREDENTIALS",
    "CLOUDSDK_AUTH_CREDENTIAL_FILE_OVERRIDE",
    "GOOGLE_API_KEY",
)

COMPUTE_SCOPES: tuple[str, ...] = ("https://www.googleapis.com/auth/compute",)

KEY_FILE_VIOLATION_MESSAGE = (
    "{env_var} is set. This operator only authenticates with workload identity "
    "or the metadata server; service account keys are not allowed. Remove the "
    "variable and bind a Google service account to the workload instead."
)


class KeyFileCredentialError(Exception):
    """Raised when key based credentials are configured.

    This is a fatal error; the operator must not start.
    """

    pass


def enforce_keyless_credentials() -> None:
    """Refuse to continue if key based credentials are configured.

    Raises:
        KeyFileCredentialError: If any forbidden variable is set.
    """
    for env_var in FORBIDDEN_CREDENTIAL_ENV_VARS:
        if os.environ.get(env_var):
            logger.critical(
                "Key based credentials detected",
                extra={
                    "security_event": "credential_detected",
                    "env_var": env_var,
                    "action": "startup_blocked",
                },
            )
            raise KeyFileCredentialError(KEY_FILE_VIOLATION_MESSAGE.format(env_var=env_var))


def get_keyless_credentials() -> tuple[Credentials, str | None]:
    """Get Application Default Credentials after enforcing the keyless policy.

    Returns:
        Tuple of (credentials, detected project id).

    Raises:
        KeyFileCredentialError: If key based credentials are configured.
        google.auth.exceptions.DefaultCredentialsError: If no credentials found.
    """
    enforce_keyless_credentials()

    credentials, project_id = google.auth.default(scopes=list(COMPUTE_SCOPES))
    logger.info(
        "Using application default credentials",
        extra={"credential_type": type(credentials).__name__, "detected_project": project_id},
    )
    return credentials, project_id
