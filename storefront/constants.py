"""Infrastructure and technical constants."""

from typing import Final

DEFAULT_PORT: Final = 8000
DEFAULT_SWEEP_INTERVAL_SECONDS: Final = 30
ADMIN_ID_HEADER: Final = "X-Admin-Id"
SYSTEM_ADMIN_ID: Final = "system"
