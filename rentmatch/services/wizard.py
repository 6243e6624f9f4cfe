import time
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, Field
from structlog import get_logger

from rentmatch.config import settings
from rentmatch.schemas.preferences import FORM_FIELDS, PreferencesFormData, range_errors
from rentmatch.services.debounce import DebouncedSaver
from rentmatch.services.errors import (
    PreferencesConflict,
    PreferencesError,
    PreferencesNotFound,
    PreferencesValidationError,
)
from rentmatch.services.preferences_store import PreferencesStore, Record
from rentmatch.services.session import SessionProvider
from rentmatch.services.transforms import (
    COMPANION_FIELDS,
    diff_fields,
    transform_api_data_for_form,
    transform_form_data_for_api,
    values_equal,
)

logger = get_logger(__name__)


class WizardStep(NamedTuple):
    number: int
    key: str
    title: str
    fields: Tuple[str, ...]


WIZARD_STEPS: Tuple[WizardStep, ...] = (
    WizardStep(1, "lifestyle", "Lifestyle", ("occupation", "family_status", "children_count")),
    WizardStep(2, "location", "Location", ("preferred_metro_stations", "preferred_essentials", "preferred_commute_times")),
    WizardStep(3, "budget", "Budget & move-in", ("move_in_date", "move_out_date", "min_price", "max_price", "deposit_preference")),
    WizardStep(
        4,
        "property",
        "Property & rooms",
        (
            "property_type_preferences",
            "rooms_preferences",
            "bathrooms_preferences",
            "furnishing_preferences",
            "outdoor_space_preferences",
            "min_square_meters",
            "max_square_meters",
        ),
    ),
    WizardStep(5, "building", "Building & duration", ("building_style_preferences", "selected_duration", "selected_bills")),
    WizardStep(6, "tenant_type", "Tenant type", ("tenant_type_preferences",)),
    WizardStep(7, "pets", "Pets", ("pet_type_preferences", "pet_additional_info", "dog_size", "number_of_pets")),
    WizardStep(8, "amenities", "Amenities", ("amenities_preferences", "additional_preferences")),
    WizardStep(9, "hobbies", "Hobbies", ("hobbies",)),
    WizardStep(10, "living_environment", "Living environment", ("ideal_living_environment", "smoker")),
    WizardStep(11, "about_you", "About you", ("preferred_address", "additional_info")),
)
TOTAL_STEPS = len(WIZARD_STEPS)

RESUME_KEY = "preferencesStep"
GENERAL_SAVE_ERROR = "Failed to save preferences. Please try again."
LOAD_ERROR = "We couldn't load your saved preferences. Please try again later."
CONFLICT_ERROR = "Your preferences were changed in another window. Review them and submit again."


class StepResumeStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...
    def set(self, key: str, value: str) -> None: ...
    def clear(self, key: str) -> None: ...


class InMemoryStepResume:
    def __init__(self):
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def clear(self, key: str) -> None:
        self.values.pop(key, None)


class Viewport(Protocol):
    def scroll_position(self) -> Any: ...
    def scroll_to(self, position: Any) -> None: ...


class WizardState(BaseModel):
    step: int = 1
    form_data: PreferencesFormData = Field(default_factory=PreferencesFormData)
    existing_preferences: Optional[Dict[str, Any]] = None
    backend_errors: Dict[str, str] = Field(default_factory=dict)
    general_error: Optional[str] = None
    loading: bool = False
    load_failed: bool = False
    navigation_blocked_until: Optional[float] = None


class PreferencesWizard:
    """Multi-step preferences form with per-field auto-save and diff-based submit.

    Edits are applied to ``state.form_data`` immediately and persisted through a
    ``DebouncedSaver``; moving forward or closing flushes the pending save.
    Must be driven from inside a running event loop.
    """

    def __init__(
        self,
        store: PreferencesStore,
        session: SessionProvider,
        user_id,
        *,
        debounce_seconds: Optional[float] = None,
        cooldown_seconds: Optional[float] = None,
        resume_store: Optional[StepResumeStore] = None,
        viewport: Optional[Viewport] = None,
        step_offset: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.session = session
        self.user_id = user_id
        self.resume_store = resume_store
        self.viewport = viewport
        self.step_offset = step_offset
        self.clock = clock
        self.cooldown_seconds = (
            settings.SUBMIT_NAVIGATION_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self.state = WizardState()
        self.saver = DebouncedSaver(self.save_single_field, debounce_seconds)

    # derived state

    @property
    def step(self) -> int:
        return self.state.step

    @property
    def current_step(self) -> WizardStep:
        return WIZARD_STEPS[self.state.step - 1]

    @property
    def is_first_step(self) -> bool:
        return self.state.step == 1

    @property
    def is_last_step(self) -> bool:
        return self.state.step == TOTAL_STEPS

    @property
    def can_navigate(self) -> bool:
        until = self.state.navigation_blocked_until
        return until is None or self.clock() >= until

    # loading

    async def load(self) -> PreferencesFormData:
        self.state.loading = True
        try:
            await self.session.await_ready()
        except Exception as e:
            logger.warning("Session not ready, loading preferences anyway", user_id=str(self.user_id), error=str(e))

        record: Optional[Record] = None
        try:
            record = await self.store.get(self.user_id)
        except PreferencesNotFound:
            logger.info("No saved preferences, starting from defaults", user_id=str(self.user_id))
        except Exception as e:
            logger.error("Failed to load preferences", user_id=str(self.user_id), error=str(e))
            self.state.load_failed = True
            self.state.general_error = LOAD_ERROR

        if record is not None:
            self.state.existing_preferences = record
            self.state.form_data = transform_api_data_for_form(record)
        self._restore_step()
        self.state.loading = False
        return self.state.form_data

    def _restore_step(self) -> None:
        if self.step_offset <= 0 or self.resume_store is None:
            return
        saved = self.resume_store.get(RESUME_KEY)
        try:
            internal = int(saved) - self.step_offset
        except (TypeError, ValueError):
            return
        if 1 <= internal <= TOTAL_STEPS:
            self.state.step = internal

    def _remember_step(self) -> None:
        if self.resume_store is None:
            return
        if self.step_offset > 0:
            self.resume_store.set(RESUME_KEY, str(self.state.step + self.step_offset))
        else:
            self.resume_store.clear(RESUME_KEY)

    # editing

    def update_field(self, field: str, value: Any) -> Any:
        """Apply an edit now and schedule its debounced save. Returns the stored value."""
        if field not in FORM_FIELDS:
            raise ValueError(f"Unknown form field: {field}")
        form = PreferencesFormData.model_validate({**self.state.form_data.model_dump(), field: value})
        self.state.form_data = form
        self.state.backend_errors.pop(field, None)
        stored = getattr(form, field)
        self.saver.edit(field, stored)
        return stored

    def toggle_feature(self, category: str, value: str) -> List[str]:
        current = getattr(self.state.form_data, category, None)
        if not isinstance(current, list):
            raise ValueError(f"{category} is not a multi-select field")
        position = self.viewport.scroll_position() if self.viewport is not None else None

        updated = [v for v in current if v != value] if value in current else [*current, value]
        self.update_field(category, updated)

        if self.viewport is not None:
            self.viewport.scroll_to(position)
        return updated

    async def save_single_field(self, field: str, value: Any) -> Optional[Record]:
        """Persist one form field (plus companions). Best effort: failures are logged only."""
        form_values = {field: value}
        for companion in COMPANION_FIELDS.get(field, ()):
            form_values[companion] = getattr(self.state.form_data, companion)
        payload = transform_form_data_for_api(form_values)
        if not payload:
            logger.debug("Form field has no persisted counterpart", field=field)
            return None

        baseline = self.state.existing_preferences or {}
        if all(values_equal(v, baseline.get(k)) for k, v in payload.items()):
            logger.debug("Skipping unchanged field", field=field, user_id=str(self.user_id))
            return None

        try:
            record = await self.store.save(self.user_id, payload)
        except Exception as e:
            logger.warning("Auto-save failed", field=field, user_id=str(self.user_id), error=str(e))
            return None
        self._adopt(record)
        logger.info("Preferences field saved", field=field, user_id=str(self.user_id), fields=sorted(payload))
        return record

    def _adopt(self, record: Record) -> None:
        current = self.state.existing_preferences
        if current is not None and record.get("version", 0) < current.get("version", 0):
            # a newer save already landed
            return
        self.state.existing_preferences = record

    # navigation

    async def next_step(self) -> int:
        await self.saver.flush()
        if self.state.step < TOTAL_STEPS:
            self.state.step += 1
            self._remember_step()
        return self.state.step

    def prev_step(self) -> int:
        if self.state.step > 1:
            self.state.step -= 1
            self._remember_step()
        return self.state.step

    def reset_to_first_step(self) -> None:
        self.state.step = 1
        if self.resume_store is not None:
            self.resume_store.clear(RESUME_KEY)

    async def close(self) -> None:
        await self.saver.flush()

    # submission

    async def submit(self, data: Union[PreferencesFormData, Dict[str, Any], None] = None) -> Optional[Record]:
        """Validated final save of every changed field.

        Returns the persisted record, or ``None`` when the submit failed; failures
        are reported through ``backend_errors`` / ``general_error``.
        """
        if data is not None:
            form = data if isinstance(data, PreferencesFormData) else PreferencesFormData.model_validate(data)
            self.state.form_data = form
        # the pending edit goes out with the submit instead
        self.saver.cancel()
        await self.saver.drain()

        payload = transform_form_data_for_api(self.state.form_data)
        errors = range_errors(payload)
        if errors:
            self.state.backend_errors = errors
            return None

        baseline = self.state.existing_preferences
        changed = diff_fields(payload, baseline)
        if not changed:
            logger.info("Submit with no changes", user_id=str(self.user_id))
            record = baseline or {}
        else:
            expected_version = baseline.get("version") if baseline else None
            try:
                record = await self.store.save(self.user_id, changed, expected_version=expected_version)
            except PreferencesValidationError as e:
                logger.warning("Submit rejected", user_id=str(self.user_id), errors=e.errors)
                self.state.backend_errors = e.errors
                self.state.general_error = None
                return None
            except PreferencesConflict as e:
                logger.warning("Submit conflict", user_id=str(self.user_id), expected=e.expected_version, current=e.current_version)
                self.state.general_error = CONFLICT_ERROR
                await self._refresh_baseline()
                return None
            except Exception as e:
                logger.error("Submit failed", user_id=str(self.user_id), error=str(e))
                self.state.general_error = e.message if isinstance(e, PreferencesError) and e.status_code < 500 else GENERAL_SAVE_ERROR
                return None
            logger.info("Preferences submitted", user_id=str(self.user_id), fields=sorted(changed))
            self._adopt(record)

        self.state.backend_errors = {}
        self.state.general_error = None
        self.state.navigation_blocked_until = self.clock() + self.cooldown_seconds
        if self.resume_store is not None:
            self.resume_store.clear(RESUME_KEY)
        return record

    async def _refresh_baseline(self) -> None:
        try:
            self.state.existing_preferences = await self.store.get(self.user_id)
        except Exception as e:
            logger.warning("Could not reload preferences after conflict", user_id=str(self.user_id), error=str(e))
