from dataclasses import dataclass
from typing import Iterable, Optional

MAP_WIDTH = 800
MAP_HEIGHT = 600

STATUS_MARKERS = {
    "draft": {"fill": "#6b7280", "stroke": "#4b5563"},
    "pending": {"fill": "#f97316", "stroke": "#ea580c"},
    "approved": {"fill": "#eab308", "stroke": "#ca8a04"},
    "active": {"fill": "#22c55e", "stroke": "#16a34a"},
    "suspended": {"fill": "#a855f7", "stroke": "#9333ea"},
    "completed": {"fill": "#3b82f6", "stroke": "#2563eb"},
    "expired": {"fill": "#ef4444", "stroke": "#dc2626"},
}
DEFAULT_MARKER = {"fill": "#6b7280", "stroke": "#4b5563"}


@dataclass(frozen=True)
class MapPoint:
    x: float
    y: float


def _check_size(width: float, height: float) -> None:
    if width <= 0 or height <= 0:
        raise ValueError("Kartengröße muss positiv sein")


def to_logical(offset_x: float, offset_y: float, rendered_width: float, rendered_height: float) -> MapPoint:
    """Convert a click offset on the rendered map into the fixed 800x600 space."""
    _check_size(rendered_width, rendered_height)
    return MapPoint(offset_x / rendered_width * MAP_WIDTH, offset_y / rendered_height * MAP_HEIGHT)


def to_screen(point: MapPoint, rendered_width: float, rendered_height: float) -> tuple[float, float]:
    _check_size(rendered_width, rendered_height)
    return point.x / MAP_WIDTH * rendered_width, point.y / MAP_HEIGHT * rendered_height


def is_within_map(x: Optional[float], y: Optional[float]) -> bool:
    if x is None or y is None:
        return False
    return 0 <= x <= MAP_WIDTH and 0 <= y <= MAP_HEIGHT


def marker_style(status: str) -> dict:
    return dict(STATUS_MARKERS.get((status or "").lower(), DEFAULT_MARKER))


def positioned_permits(
    permits: Iterable,
    status: Optional[str] = None,
    work_location_id: Optional[int] = None,
) -> list:
    result = []
    for permit in permits:
        if permit.map_position_x is None or permit.map_position_y is None:
            continue
        if status and permit.status != status:
            continue
        if work_location_id is not None and permit.work_location_id != work_location_id:
            continue
        result.append(permit)
    return result
