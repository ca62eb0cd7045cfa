"""
CSV calendar import

Each row is validated, branded, assigned to its calendar group and then
created in GHL, or updated when a calendar with the same slug exists.
"""

import csv
import io
import logging
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from ...branding import build_calendar_payload, generate_idempotency_key, to_ghl_calendar_body
from ...errors import AppError, get_error_message
from ...kv import KVStore
from ...rate_limiter import RateLimiter, ghl_limiter
from ...services.ghl_client import GHLClient
from ...shared.validators import row_value, slugify, uniquify_slug, validate_csv_row
from ..settings.service import SettingsService
from ..tenants.repository import LocationRepository

logger = logging.getLogger(__name__)


def parse_csv_text(text: str) -> list[dict]:
    """Rows of a CSV upload keyed by normalized header"""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    rows = []
    for raw in reader:
        row = {
            (key or "").strip().lower(): (value or "").strip()
            for key, value in raw.items()
            if key is not None
        }
        if any(row.values()):
            rows.append(row)
    return rows


def summarize(results: list[dict]) -> dict:
    successful = [r for r in results if r["success"]]
    return {
        "total": len(results),
        "successful": len(successful),
        "failed": len(results) - len(successful),
        "updated": sum(1 for r in successful if r.get("isUpdate")),
        "created": sum(1 for r in successful if not r.get("isUpdate")),
    }


class CalendarImporter:
    def __init__(self, db: Session, kv: KVStore, limiter: RateLimiter = ghl_limiter):
        self.db = db
        self.settings = SettingsService(kv)
        self.limiter = limiter

    def _location_timezone(self, location_id: str) -> Optional[str]:
        location = LocationRepository.get_location(self.db, location_id)
        return location.time_zone if location else None

    async def import_rows(
        self,
        location_id: str,
        rows: list[dict],
        client: Optional[GHLClient] = None,
        dry_run: bool = False,
    ) -> dict:
        """Import rows; a dry run builds the payloads without calling GHL"""
        brand = {**self.settings.get_brand_config(location_id), "locationId": location_id}
        defaults = self.settings.get_calendar_defaults(location_id)
        location_tz = self._location_timezone(location_id)
        group_cache: dict[str, str] = {}
        used_slugs: set[str] = set()
        results = []

        logger.info(f"📥 Importing {len(rows)} calendar row(s) for location {location_id} (dry run: {dry_run})")

        for index, row in enumerate(rows):
            name = row_value(row, "calendar_name")
            slug = row_value(row, "custom_url") or slugify(name)
            issues = validate_csv_row(row, index)
            errors = [i.message for i in issues if i.severity == "error"]
            warnings = [i.message for i in issues if i.severity == "warning"]

            if errors:
                results.append(
                    {"success": False, "slug": slug, "name": name, "error": "; ".join(errors), "warnings": warnings}
                )
                continue

            try:
                group_id = None
                group_name = row_value(row, "calendar_group")
                if group_name and not dry_run:
                    if group_name not in group_cache:
                        group_cache[group_name] = await client.ensure_group(location_id, group_name)
                    group_id = group_cache[group_name]

                payload = build_calendar_payload(row, brand, group_id, defaults, location_tz)
                unique_slug = uniquify_slug(payload.slug, used_slugs)
                if unique_slug != payload.slug:
                    warnings.append(f'Slug "{payload.slug}" already used in this import, using "{unique_slug}"')
                    payload.slug = unique_slug
                used_slugs.add(payload.slug)
                body = to_ghl_calendar_body(payload, location_id)

                if dry_run:
                    results.append(
                        {
                            "success": True,
                            "slug": payload.slug,
                            "name": payload.name,
                            "isUpdate": False,
                            "payload": body,
                            "idempotencyKey": generate_idempotency_key(location_id, payload.name, payload.slug),
                            "warnings": warnings,
                        }
                    )
                    continue

                calendar_id, is_update = await self.limiter.schedule(client.create_or_update_calendar, body)
                results.append(
                    {
                        "success": True,
                        "calendarId": calendar_id,
                        "slug": payload.slug,
                        "name": payload.name,
                        "isUpdate": is_update,
                        "warnings": warnings,
                    }
                )
            except (AppError, httpx.HTTPError, ValueError) as e:
                logger.error(f"❌ Error processing row {index}: {get_error_message(e)}")
                results.append({"success": False, "slug": slug, "name": name, "error": get_error_message(e)})

        summary = summarize(results)
        logger.info(
            f"✅ Import finished for {location_id}: {summary['successful']} succeeded, {summary['failed']} failed"
        )
        return {"success": True, "results": results, "summary": summary}
