from __future__ import annotations
import logging
from typing import BinaryIO, Optional, Tuple

import httpx

from backend.app.config.settings import settings
from packages.schemas.errors import ReportValidationError
from packages.schemas.types import Report, ReportDraft
from .api import ReportsClient
from .viewport import MapViewportController

log = logging.getLogger(__name__)

# Shown as hints next to the free-text category field
SUGGESTED_CATEGORIES = ("Crime", "Hazard", "Outage", "Traffic", "Harassment", "Other")


class ReportComposer:
    """
    In-progress report form. Coordinates start from a seed (geolocation or the
    default center) but submitting needs an explicit map click or drag.
    """

    def __init__(self, client: ReportsClient, controller: Optional[MapViewportController] = None):
        self._client = client
        self._controller = controller
        self.category = ""
        self.description = ""
        self.location = ""
        self.file: Optional[Tuple[str, BinaryIO]] = None
        self.latitude = settings.DEFAULT_LAT
        self.longitude = settings.DEFAULT_LON
        self.location_selected = False
        self.submitting = False
        if controller is not None:
            controller.add_location_listener(self.select_location)

    def seed(self, lat: float, lon: float) -> None:
        """Initial coordinates; ignored once the user has picked a spot."""
        if not self.location_selected:
            self.latitude, self.longitude = lat, lon

    def select_location(self, lat: float, lon: float) -> None:
        self.latitude, self.longitude = lat, lon
        self.location_selected = True

    def category_suggestions(self) -> Tuple[str, ...]:
        typed = self.category.strip().lower()
        return tuple(c for c in SUGGESTED_CATEGORIES if c.lower().startswith(typed))

    def attach(self, filename: str, fileobj: BinaryIO) -> None:
        self.file = (filename, fileobj)

    def detach(self) -> None:
        self.file = None

    @property
    def can_submit(self) -> bool:
        return self.location_selected and not self.submitting

    def build_draft(self) -> ReportDraft:
        if not self.location_selected:
            raise ReportValidationError("Pick the report location on the map first")
        return ReportDraft.build(
            category=self.category,
            description=self.description,
            location=self.location,
            latitude=self.latitude,
            longitude=self.longitude,
            attachment_name=self.file[0] if self.file else None,
        )

    async def submit(self) -> Report:
        """
        Send the form. On failure the exception propagates and every field is kept
        so the user can retry by hand.
        """
        if self.submitting:
            raise ReportValidationError("A submission is already in progress")
        draft = self.build_draft()
        self.submitting = True
        try:
            report = await self._client.create_report(draft, file=self.file)
        except httpx.HTTPError as e:
            log.warning("Report submission failed: %s", e)
            raise
        finally:
            self.submitting = False

        self.description = ""
        self.location = ""
        self.file = None
        if self._controller is not None and self._controller.ready:
            self._controller.invalidate_bounds_cache_entry()
            self._controller.refresh()
        return report
