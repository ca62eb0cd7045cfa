"""Settings service - brand config and calendar defaults stored in KV"""

import logging
from datetime import datetime, timezone

from ...config import DEFAULT_TIMEZONE
from ...kv import KVStore, brand_config_key, calendar_defaults_key
from ...shared.validators import validate_brand_config, validate_calendar_defaults
from .schemas import BrandConfig, CalendarDefaults

logger = logging.getLogger(__name__)


class SettingsValidationError(Exception):
    """Document failed validation; carries the user-facing messages"""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SettingsService:
    def __init__(self, kv: KVStore):
        self.kv = kv

    def default_brand_config(self, location_id: str) -> dict:
        return BrandConfig(
            locationId=location_id, timezone=DEFAULT_TIMEZONE, updatedAt=iso_now()
        ).model_dump(exclude_none=True)

    def get_brand_config(self, location_id: str) -> dict:
        stored = self.kv.get_json(brand_config_key(location_id))
        if stored is None:
            return self.default_brand_config(location_id)
        return stored

    def save_brand_config(self, config: dict) -> dict:
        errors = validate_brand_config(config)
        if errors:
            logger.warning(f"⚠️ Brand config rejected for {config.get('locationId')}: {errors}")
            raise SettingsValidationError(errors)

        config = {**config, "updatedAt": iso_now()}
        self.kv.put_json(brand_config_key(config["locationId"]), config)
        logger.info(f"🎨 Brand config saved for location {config['locationId']}")
        return config

    def default_calendar_defaults(self, location_id: str) -> dict:
        return CalendarDefaults(locationId=location_id, updatedAt=iso_now()).model_dump(exclude_none=True)

    def get_calendar_defaults(self, location_id: str) -> dict:
        stored = self.kv.get_json(calendar_defaults_key(location_id))
        if stored is None:
            return self.default_calendar_defaults(location_id)
        return stored

    def save_calendar_defaults(self, defaults: dict) -> dict:
        errors = validate_calendar_defaults(defaults)
        if errors:
            logger.warning(f"⚠️ Calendar defaults rejected for {defaults.get('locationId')}: {errors}")
            raise SettingsValidationError(errors)

        defaults = {**defaults, "updatedAt": iso_now()}
        self.kv.put_json(calendar_defaults_key(defaults["locationId"]), defaults)
        logger.info(f"⚙️ Calendar defaults saved for location {defaults['locationId']}")
        return defaults
