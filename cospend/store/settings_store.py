"""Settings Store: party display names and the current user, under `appSettings`."""

from typing import Optional

from pydantic import ValidationError

from cospend.audit import AuditLogger
from cospend.models.expense import AppSettings, PartyID
from cospend.services.storage import CorruptDataError, KeyValueStorageInterface


SETTINGS_KEY = "appSettings"


class SettingsStore:
    """Singleton preferences record, changed only through update()."""

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        strict_load: bool = False,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._strict_load = strict_load
        self._settings = self._load()

    def _load(self) -> AppSettings:
        raw = self._storage.get_item(SETTINGS_KEY)
        if raw is None:
            return AppSettings()
        try:
            return AppSettings.model_validate_json(raw)
        except ValidationError as e:
            if self._strict_load:
                raise CorruptDataError(SETTINGS_KEY, str(e)) from e
            if self._audit_logger:
                self._audit_logger.log_storage_load_failed(
                    key=SETTINGS_KEY,
                    error_message=str(e),
                )
            return AppSettings()

    @property
    def settings(self) -> AppSettings:
        # Copy so callers cannot bypass update()
        return self._settings.model_copy()

    @property
    def current_user_id(self) -> PartyID:
        return self._settings.current_user_id

    def display_name(self, party: PartyID) -> str:
        return self._settings.name_for(party)

    def update(self, **changes) -> AppSettings:
        """
        Apply changes (field names or their camelCase aliases) and persist.

        Raises:
            pydantic.ValidationError: If the result is not a valid AppSettings
            StorageError: If the write fails

        Nothing changes when either is raised.
        """
        data = self._settings.model_dump()
        for key, value in changes.items():
            field = _ALIASES.get(key, key)
            if field not in AppSettings.model_fields:
                raise ValueError(f"Unknown setting: {key}")
            data[field] = value

        updated = AppSettings.model_validate(data)
        changed = [
            name for name in AppSettings.model_fields
            if getattr(updated, name) != getattr(self._settings, name)
        ]

        self._storage.set_item(SETTINGS_KEY, updated.model_dump_json(by_alias=True))
        self._settings = updated

        if self._audit_logger:
            self._audit_logger.log_settings_updated(changed)

        return self.settings


_ALIASES = {
    field.alias: name
    for name, field in AppSettings.model_fields.items()
    if field.alias
}
