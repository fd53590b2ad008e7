"""
Collaborator contracts for the map widget and geolocation.

The viewport controller only talks to these protocols; a browser bridge or a
test fake supplies the implementation. Event names follow the usual web-map
conventions: "click" and "dragend" carry (lat, lon), "moveend" carries nothing
(read the new bounds with get_bounds()).
"""
from __future__ import annotations
from typing import Any, Callable, Protocol, Tuple

from packages.schemas.types import BoundingBox


class Layer(Protocol):
    def remove(self) -> None: ...


class Marker(Layer, Protocol):
    def set_lat_lng(self, lat: float, lon: float) -> None: ...
    def bind_popup(self, html: str) -> None: ...
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...


class ClusterLayer(Layer, Protocol):
    def add_marker(self, lat: float, lon: float, popup: str) -> Marker: ...
    def clear_layers(self) -> None: ...


class MapWidget(Protocol):
    def set_view(self, lat: float, lon: float, zoom: int) -> None: ...
    def add_tile_layer(self, url: str, attribution: str) -> Layer: ...
    def add_cluster_layer(self) -> ClusterLayer: ...
    def add_marker(self, lat: float, lon: float, draggable: bool = False) -> Marker: ...
    def get_bounds(self) -> BoundingBox: ...
    def get_zoom(self) -> int: ...
    def on(self, event: str, handler: Callable[..., Any]) -> None: ...
    def remove(self) -> None: ...


# Builds a widget over a container surface (a DOM id, a canvas, ...)
WidgetFactory = Callable[[Any], MapWidget]


class Geolocator(Protocol):
    async def locate(self) -> Tuple[float, float]:
        """One-shot position lookup; raises GeolocationError on failure or denial."""
        ...


class GeolocationError(Exception):
    """Position unavailable: denied, unsupported, or no fix."""
