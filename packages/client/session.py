from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Optional

from backend.app.config.settings import settings
from .api import ReportsClient
from .composer import ReportComposer
from .viewport import MapViewportController
from .widget import Geolocator, WidgetFactory


@dataclass
class MapSession:
    client: ReportsClient
    controller: MapViewportController
    composer: ReportComposer

    async def close(self) -> None:
        self.controller.teardown()
        await self.client.aclose()


async def open_map_session(
    container: Any,
    widget_factory: WidgetFactory,
    geolocator: Optional[Geolocator] = None,
    *,
    client: Optional[ReportsClient] = None,
    dark_mode: bool = False,
) -> MapSession:
    """Wire map controller and composer together over one API client."""
    client = client or ReportsClient(settings.API_BASE_URL, timeout=settings.HTTP_TIMEOUT)
    controller = MapViewportController(client, widget_factory, geolocator, dark_mode=dark_mode)
    composer = ReportComposer(client, controller)
    lat, lon = await controller.initialize(container)
    composer.seed(lat, lon)
    return MapSession(client, controller, composer)
