"""Configuration constants for the state provisioning job."""
from __future__ import annotations

import os
from pathlib import Path

DATA_DIR: Path = Path(os.getenv("PROVISIONER_DATA_DIR", "/app/data"))
LOG_DIR: Path = DATA_DIR / "logs"
LOG_FILE: Path = LOG_DIR / "latest.log"
ARTIFACTS_DIR: Path = DATA_DIR / "artifacts"
REPORTS_DIR: Path = DATA_DIR / "reports"
RUNS_DIR: Path = DATA_DIR / "runs"
DB_PATH: Path = DATA_DIR / "provisioner.db"
CATALOG_FILE: Path = Path(
    os.getenv("PROVISIONER_CATALOG_FILE", str(DATA_DIR / "catalog.json"))
)

# Registry key for the single-flight check; only one run per job type.
JOB_TYPE: str = "state_provisioning"

BASE_URL: str = os.getenv("PROVISIONER_BASE_URL", "").strip().rstrip("/")
SESSION_ID: str = os.getenv("PROVISIONER_SESSION_ID", "").strip()
SESSION_COOKIE_NAME: str = os.getenv("PROVISIONER_SESSION_COOKIE", "sid").strip() or "sid"

FORM_PATH: str = "/i18n/ConfigureNewState"
FORM_REGION_PARAM: str = "countryIso"


def _parse_timeout_seconds(env_var: str, default: int, *, minimum: int = 1) -> int:
    """Parse a timeout value in seconds from the environment with bounds."""

    try:
        value = int(os.getenv(env_var, str(default)))
    except ValueError:
        return default
    return max(minimum, value)


HTTP_TIMEOUT_SECONDS: int = _parse_timeout_seconds("PROVISIONER_HTTP_TIMEOUT_SECONDS", 60)
HTTP_RETRY_BACKOFF_SECONDS: float = float(
    os.getenv("PROVISIONER_RETRY_BACKOFF_SECONDS", "1.0")
)
# One automatic retry on transport failure, never more.
HTTP_MAX_ATTEMPTS: int = 2

# Scopes per unit of work. 1 keeps each remote form reset isolated.
CHUNK_SIZE: int = int(os.getenv("PROVISIONER_CHUNK_SIZE", "1"))
# Deliveries of one unit by the built-in scheduler before the run is failed.
UNIT_MAX_ATTEMPTS: int = int(os.getenv("PROVISIONER_UNIT_MAX_ATTEMPTS", "2"))

# Label submitted when the display name contains the subdivision code.
LABEL_SENTINEL: str = os.getenv("PROVISIONER_LABEL_SENTINEL", "Unnamed")

# Response markers used by the outcome classifier.
ERRORS_BLOCK_MARKER: str = "<h4>Errors</h4>"
ERROR_SINGLE_MARKER: str = "<h4>Error:</h4>"
LIST_ITEM_OPEN: str = "<li>"
LIST_ITEM_CLOSE: str = "</li>"
MISSING_INFO_PHRASE: str = os.getenv("PROVISIONER_MISSING_INFO_PHRASE", "Data Not Available")
SUCCESS_MARKER: str = "success=true"

# View-state hidden inputs are rendered as name="<prefix><Name>" value="...".
VIEW_STATE_FIELD_PREFIX: str = "com.salesforce.visualforce."

NOTIFY_WEBHOOK_URL: str = os.getenv("PROVISIONER_NOTIFY_WEBHOOK_URL", "").strip()
NOTIFY_TIMEOUT_SECONDS: int = _parse_timeout_seconds("PROVISIONER_NOTIFY_TIMEOUT_SECONDS", 30)

COMMON_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
}

FORM_CONTENT_TYPE: str = "application/x-www-form-urlencoded"


def form_url(base_url: str | None = None) -> str:
    """Return the absolute URL of the new-state form."""

    return f"{(base_url if base_url is not None else BASE_URL).rstrip('/')}{FORM_PATH}"
