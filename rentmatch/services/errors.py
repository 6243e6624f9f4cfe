from typing import Dict, Optional


class PreferencesError(Exception):
    """Base class for preferences store failures."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class PreferencesNotFound(PreferencesError):
    def __init__(self, user_id=None):
        super().__init__(f"No preferences for user {user_id}", status_code=404)
        self.user_id = user_id


class PreferencesValidationError(PreferencesError):
    """Raised with a field -> message map when a payload is rejected."""

    def __init__(self, errors: Dict[str, str], message: str = "Invalid preferences"):
        super().__init__(message, status_code=422)
        self.errors = dict(errors)


class PreferencesConflict(PreferencesError):
    def __init__(self, expected_version: Optional[int], current_version: Optional[int]):
        super().__init__(
            f"Preferences were modified elsewhere (expected version {expected_version}, current {current_version})",
            status_code=409,
        )
        self.expected_version = expected_version
        self.current_version = current_version


class PreferencesStoreError(PreferencesError):
    """Transport or backend failure talking to the preferences store."""

    def __init__(self, message: str = "Preferences store unavailable", status_code: int = 503):
        super().__init__(message, status_code=status_code)
