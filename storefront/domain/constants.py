"""Domain business rules and constants."""

from typing import Final

# Undo window
DEFAULT_UNDO_TIMEOUT_MS: Final = 5000
UNDO_TOKEN_PREFIX: Final = "undo"

# Catalog constraints
MAX_NAME_LENGTH: Final = 255
MAX_SLUG_LENGTH: Final = 255
