from __future__ import annotations

import logging

LOGGER = logging.getLogger("oidcflow.flow")
APP_VERSION = "0.1.0"

# Correlation ids tagging user-agent launches.
AUTH_REQUEST_CODE = 101
END_SESSION_REQUEST_CODE = 102

DEFAULT_SCOPES = "openid email profile"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:8765/callback"
DEFAULT_END_SESSION_REDIRECT_URI = "http://127.0.0.1:8765/logout"

AUTHORIZATION_IN_PROGRESS = "Authorization already in progress"
END_SESSION_IN_PROGRESS = "End session already in progress"
END_SESSION_NOT_CONFIGURED = "End session endpoint not configured"
NO_ID_TOKEN = "No id token available"
NO_REFRESH_TOKEN = "No refresh token found"
LAUNCH_FAILED = "Unable to launch user agent"
