"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system.
"""

# ─── Account lifecycle ───────────────────────────────────

ACCOUNT_REGISTERED = "account.registered"
ACCOUNT_UPDATED = "account.updated"

# ─── Sessions (refresh token lifetime) ───────────────────

LOGIN_SUCCEEDED = "auth.login_succeeded"
TOKEN_REFRESHED = "auth.token_refreshed"
REFRESH_TOKEN_REUSE_DETECTED = "auth.refresh_token_reuse_detected"
LOGGED_OUT = "auth.logged_out"

# ─── Passwords ───────────────────────────────────────────

PASSWORD_RESET_REQUESTED = "password.reset_requested"
PASSWORD_RESET = "password.reset"
PASSWORD_CHANGED = "password.changed"
