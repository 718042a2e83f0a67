import math

from core.types import Heatmap, HeatmapPoint, IntensityBucket, InteractionEvent

INTENSITY_STEP = 0.1


def intensity_bucket(max_intensity: float) -> IntensityBucket:
    if max_intensity > 0.7:
        return IntensityBucket.HIGH
    if max_intensity > 0.4:
        return IntensityBucket.MEDIUM
    return IntensityBucket.LOW


class HeatmapAggregator:
    """Bins interaction start positions into a fixed grid with streaming averages per cell."""

    def __init__(self, grid_size: int = 20, width: int = 1920, height: int = 1080):
        self.grid_size = grid_size
        self.width = width
        self.height = height
        self._cells: dict[tuple[float, float], HeatmapPoint] = {}

    def cell_key(self, x: float, y: float) -> tuple[float, float]:
        g = self.grid_size
        return (float(math.floor(x / g) * g), float(math.floor(y / g) * g))

    def ingest(self, event: InteractionEvent) -> HeatmapPoint:
        key = self.cell_key(event.start.x, event.start.y)
        cell = self._cells.get(key)
        if cell is None:
            cell = HeatmapPoint(
                x=key[0],
                y=key[1],
                intensity=INTENSITY_STEP,
                interaction_count=1,
                avg_accuracy=event.accuracy,
                avg_response_time_ms=event.response_time_ms,
            )
            self._cells[key] = cell
            return cell

        count = cell.interaction_count
        cell.avg_accuracy = (cell.avg_accuracy * count + event.accuracy) / (count + 1)
        cell.avg_response_time_ms = (cell.avg_response_time_ms * count + event.response_time_ms) / (count + 1)
        cell.interaction_count = count + 1
        cell.intensity = min(1.0, cell.intensity + INTENSITY_STEP)
        return cell

    def get(self, x: float, y: float) -> HeatmapPoint | None:
        return self._cells.get(self.cell_key(x, y))

    def snapshot(self, start_time: int, end_time: int) -> Heatmap:
        points = [
            HeatmapPoint(
                x=p.x,
                y=p.y,
                intensity=p.intensity,
                interaction_count=p.interaction_count,
                avg_accuracy=p.avg_accuracy,
                avg_response_time_ms=p.avg_response_time_ms,
            )
            for _, p in sorted(self._cells.items())
        ]
        max_intensity = max((p.intensity for p in points), default=0.0)
        return Heatmap(
            points=points,
            width=self.width,
            height=self.height,
            intensity=intensity_bucket(max_intensity),
            start_time=start_time,
            end_time=end_time,
        )

    def clear(self) -> None:
        self._cells.clear()

    def __len__(self) -> int:
        return len(self._cells)
