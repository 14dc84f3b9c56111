"""Shared constants for blockgate.

Storage keys, wire-contract names, poll cadence and user-facing copy used
across the client and the account status service are defined here.
No magic strings in other modules - import from here.
"""

# ─── Mirror Store keys ────────────────────────────────────────────────────────
# Same key names the web frontend keeps in localStorage, so a store exported
# from a browser session can be loaded as-is.

STORAGE_KEY_BLOCKED: str = "user_blocked_state"
STORAGE_KEY_BLOCK_INFO: str = "user_block_info"
STORAGE_KEY_TOAST_SHOWN: str = "user_toast_shown"
STORAGE_KEY_USER: str = "user"
STORAGE_KEY_TOKEN: str = "token"

# Keys removed by BlockedStateController.clear(). The token is not one of them:
# the blocked-state flow only ever reads it.
BLOCK_STATE_KEYS: tuple[str, ...] = (
    STORAGE_KEY_BLOCKED,
    STORAGE_KEY_BLOCK_INFO,
    STORAGE_KEY_TOAST_SHOWN,
    STORAGE_KEY_USER,
)

# ─── Roles ────────────────────────────────────────────────────────────────────

ROLE_ADMIN: str = "admin"
ROLE_VOLUNTEER: str = "volunteer"
ROLE_NGO: str = "ngo"
VALID_ROLES: frozenset[str] = frozenset({ROLE_ADMIN, ROLE_VOLUNTEER, ROLE_NGO})

# ─── Polling ──────────────────────────────────────────────────────────────────

# Status re-check cadence while the session is gated (seconds).
STATUS_POLL_INTERVAL_S: float = 30.0

# Per-request timeout for the account status API (seconds).
API_REQUEST_TIMEOUT_S: float = 10.0

# API calls slower than this are logged at WARNING by PerformanceLogger.
API_SLOW_CALL_MS: float = 1_000.0

# ─── Wire contract ────────────────────────────────────────────────────────────

STATUS_PATH: str = "/api/users/status"
PROFILE_PATH: str = "/api/users/profile"
LOGOUT_PATH: str = "/api/auth/logout"
TOGGLE_BLOCK_PATH: str = "/api/admin/users/{user_id}/toggle-block"

# Blocked responses carry this header and error code (HTTP 403).
BLOCKED_HEADER: str = "X-Account-Blocked"
BLOCKED_ERROR_CODE: str = "account_blocked"
BLOCKED_STATUS_CODE: int = 403

REQUEST_ID_HEADER: str = "X-Request-ID"

# Session token format: wz-<26-char ULID>
SESSION_TOKEN_PREFIX: str = "wz-"
SESSION_COOKIE_NAME: str = "token"

# ─── User-facing copy ─────────────────────────────────────────────────────────

DEFAULT_BLOCK_REASON: str = "Account has been suspended. Contact admin for clarification."
GATE_FALLBACK_REASON: str = (
    "No specific reason provided. Please contact admin for more information."
)
BLOCKED_TOAST_MESSAGE: str = "Your account has been suspended. Please contact admin."
UNBLOCKED_TOAST_MESSAGE: str = (
    "Your account has been unblocked! You can now use the platform."
)

LOGIN_ROUTE: str = "/auth"

SUPPORT_EMAIL: str = "admin@wastezero.com"
SUPPORT_PHONE: str = "+1 (555) 123-4567"
APPEAL_SUBJECT: str = "Account Suspension Appeal"
