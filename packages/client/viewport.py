from __future__ import annotations
import asyncio, html, logging
from enum import Enum
from typing import Any, Callable, List, Optional, Set, Tuple

import httpx

from backend.app.config.settings import settings
from packages.schemas.types import Report
from .api import ReportsClient
from .cache import BoundsCache, CacheKey
from .widget import ClusterLayer, GeolocationError, Geolocator, Layer, MapWidget, Marker, WidgetFactory

log = logging.getLogger(__name__)

LocationListener = Callable[[float, float], Any]


class ViewportState(str, Enum):
    UNINITIALIZED = "uninitialized"
    IDLE = "idle"
    LOADING = "loading"
    DISPOSED = "disposed"


class Debouncer:
    """Runs `callback` once `delay` seconds have passed without another trigger()."""

    def __init__(self, loop: asyncio.AbstractEventLoop, delay: float, callback: Callable[[], Any]):
        self._loop = loop
        self._delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        self.cancel()
        self._handle = self._loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self._callback()


def popup_html(report: Report) -> str:
    parts = [f"<strong>{html.escape(report.category)}</strong>",
             f"<p>{html.escape(report.description)}</p>"]
    if report.location:
        parts.append(f"<p><em>{html.escape(report.location)}</em></p>")
    if report.resolved:
        note = f": {html.escape(report.resolution_note)}" if report.resolution_note else ""
        parts.append(f"<p>✅ Resolved{note}</p>")
    parts.append(f"<small>{report.created_at.isoformat()}</small>")
    return "".join(parts)


class MapViewportController:
    """
    Owns one map widget: viewport-scoped fetching, the bounds cache,
    clustered report markers and the single draggable pending marker.

    Lifecycle: initialize() -> (settle events / commands) -> teardown().
    Everything runs on the UI event loop; widget callbacks are plain functions
    and network work is spawned as tasks.
    """

    def __init__(
        self,
        client: ReportsClient,
        widget_factory: WidgetFactory,
        geolocator: Optional[Geolocator] = None,
        *,
        cache: Optional[BoundsCache] = None,
        debounce_seconds: Optional[float] = None,
        dark_mode: bool = False,
        on_error: Optional[Callable[[Exception], Any]] = None,
    ):
        self._client = client
        self._widget_factory = widget_factory
        self._geolocator = geolocator
        self._cache = cache or BoundsCache(settings.CACHE_CAPACITY, settings.CACHE_PRECISION)
        self._debounce_seconds = settings.DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self._dark_mode = dark_mode
        self._on_error = on_error

        self.state = ViewportState.UNINITIALIZED
        self.center: Tuple[float, float] = (settings.DEFAULT_LAT, settings.DEFAULT_LON)
        self._init_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._widget: Optional[MapWidget] = None
        self._base_layer: Optional[Layer] = None
        self._cluster: Optional[ClusterLayer] = None
        self._debouncer: Optional[Debouncer] = None
        self._pending_marker: Optional[Marker] = None
        self._pending_position: Optional[Tuple[float, float]] = None
        self._rendered: Tuple[Report, ...] = ()
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()
        self._location_listeners: List[LocationListener] = []

    # ---------- read-only views ----------
    @property
    def ready(self) -> bool:
        return self.state in (ViewportState.IDLE, ViewportState.LOADING)

    @property
    def cache(self) -> BoundsCache:
        return self._cache

    @property
    def rendered_reports(self) -> Tuple[Report, ...]:
        return self._rendered

    @property
    def pending_position(self) -> Optional[Tuple[float, float]]:
        return self._pending_position

    def add_location_listener(self, listener: LocationListener) -> None:
        self._location_listeners.append(listener)

    # ---------- lifecycle ----------
    async def initialize(self, container: Any) -> Tuple[float, float]:
        """
        Build the widget once. Concurrent or later calls wait for that first
        build and return the same center.
        """
        if self.state is ViewportState.DISPOSED:
            raise RuntimeError("map controller was torn down")
        init = self._init_task
        if init is None:
            init = self._init_task = asyncio.ensure_future(self._build(container))
        try:
            return await asyncio.shield(init)
        except Exception:
            # a failed build may be retried
            if self._init_task is init:
                self._init_task = None
            raise

    async def _build(self, container: Any) -> Tuple[float, float]:
        self._loop = asyncio.get_running_loop()
        self.center = await self._initial_center()
        widget = self._widget_factory(container)
        widget.set_view(self.center[0], self.center[1], settings.DEFAULT_ZOOM)
        self._widget = widget
        self._base_layer = self._add_base_layer()
        self._cluster = widget.add_cluster_layer()
        self._debouncer = Debouncer(self._loop, self._debounce_seconds, self._on_viewport_settled)
        widget.on("click", self._on_map_click)
        widget.on("moveend", self._on_move_end)
        self.state = ViewportState.IDLE
        log.debug("Map ready at %.5f,%.5f", *self.center)
        self._start_load(force=False)
        return self.center

    def teardown(self) -> None:
        if self.state is ViewportState.DISPOSED:
            return
        if self._init_task is not None and not self._init_task.done():
            self._init_task.cancel()
        if self._debouncer is not None:
            self._debouncer.cancel()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        if self._widget is not None:
            self._widget.remove()
        self._widget = self._base_layer = self._cluster = None
        self._pending_marker = None
        self.state = ViewportState.DISPOSED

    async def _initial_center(self) -> Tuple[float, float]:
        default = (settings.DEFAULT_LAT, settings.DEFAULT_LON)
        if self._geolocator is None:
            return default
        try:
            lat, lon = await asyncio.wait_for(self._geolocator.locate(), settings.GEOLOCATION_TIMEOUT)
        except (GeolocationError, asyncio.TimeoutError) as e:
            log.info("Geolocation unavailable (%s), using default center", str(e) or type(e).__name__)
            return default
        except Exception:
            log.warning("Geolocation lookup crashed, using default center", exc_info=True)
            return default
        return (float(lat), float(lon))

    def _add_base_layer(self) -> Layer:
        url = settings.TILE_URL_DARK if self._dark_mode else settings.TILE_URL_LIGHT
        return self._widget.add_tile_layer(url, settings.TILE_ATTRIBUTION)

    # ---------- widget events ----------
    def _on_map_click(self, lat: float, lon: float) -> None:
        self.place_pending_marker(lat, lon)

    def _on_pending_drag_end(self, lat: float, lon: float) -> None:
        self._pending_position = (lat, lon)
        self._notify_location(lat, lon)

    def _on_move_end(self, *_: Any) -> None:
        if self._debouncer is not None:
            self._debouncer.trigger()

    def _on_viewport_settled(self) -> None:
        if self.ready:
            self._start_load(force=False)

    def _notify_location(self, lat: float, lon: float) -> None:
        for listener in self._location_listeners:
            listener(lat, lon)

    # ---------- commands ----------
    def place_pending_marker(self, lat: float, lon: float) -> None:
        self._require_ready()
        if self._pending_marker is not None:
            self._pending_marker.remove()
        marker = self._widget.add_marker(lat, lon, draggable=True)
        marker.on("dragend", self._on_pending_drag_end)
        self._pending_marker = marker
        self._pending_position = (lat, lon)
        self._notify_location(lat, lon)

    def remove_pending_marker(self) -> None:
        if self._pending_marker is not None:
            self._pending_marker.remove()
        self._pending_marker = None
        self._pending_position = None

    def navigate_to(self, lat: float, lon: float, zoom: Optional[int] = None) -> None:
        self._require_ready()
        self._widget.set_view(lat, lon, self._widget.get_zoom() if zoom is None else zoom)

    def set_dark_mode(self, dark: bool) -> None:
        if dark == self._dark_mode:
            return
        self._dark_mode = dark
        if self._widget is None:
            return
        if self._base_layer is not None:
            self._base_layer.remove()
        self._base_layer = self._add_base_layer()

    def refresh(self) -> Optional[asyncio.Task]:
        """Refetch the current viewport, bypassing the cache."""
        self._require_ready()
        return self._start_load(force=True)

    def invalidate_bounds_cache_entry(self) -> bool:
        self._require_ready()
        return self._cache.discard(self._cache.key_for(self._widget.get_bounds()))

    async def settled(self) -> None:
        """Wait for in-flight loads (handy for shells and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _require_ready(self) -> None:
        if not self.ready:
            raise RuntimeError(f"map controller is {self.state.value}")

    # ---------- loading + rendering ----------
    def _start_load(self, force: bool) -> Optional[asyncio.Task]:
        bounds = self._widget.get_bounds()
        key = self._cache.key_for(bounds)
        self._generation += 1
        generation = self._generation

        if not force:
            cached = self._cache.get(key)
            if cached is not None:
                log.debug("Bounds cache hit %s", key)
                self._render(cached)
                self.state = ViewportState.IDLE
                return None

        self.state = ViewportState.LOADING
        task = self._loop.create_task(self._load(generation, key, bounds))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _load(self, generation: int, key: CacheKey, bounds) -> None:
        try:
            reports = await self._client.fetch_reports(bounds)
        except Exception as e:
            if isinstance(e, httpx.HTTPError):
                log.warning("Report fetch for %s failed: %s", key, e)
            else:
                log.exception("Report fetch for %s failed", key)
            if generation == self._generation and self.ready:
                self.state = ViewportState.IDLE
            if self._on_error is not None:
                self._on_error(e)
            return

        # an older response may predate an invalidate/refresh of this key; never cache it
        if generation != self._generation or not self.ready:
            log.debug("Discarding stale reports for %s", key)
            return
        self._render(self._cache.put(key, reports))
        self.state = ViewportState.IDLE

    def _render(self, reports: Tuple[Report, ...]) -> None:
        # pending marker lives on the map itself, not in the cluster layer
        self._cluster.clear_layers()
        for r in reports:
            self._cluster.add_marker(r.latitude, r.longitude, popup_html(r))
        self._rendered = tuple(reports)
