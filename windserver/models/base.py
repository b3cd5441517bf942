from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LevelSpec:
    name: str
    altitude: str
    selector: str

    @property
    def description(self) -> str:
        return f"Wind data at {self.altitude}"


@dataclass(frozen=True)
class ForecastOffset:
    hours: int

    def __post_init__(self) -> None:
        if not 0 <= self.hours <= 999:
            raise ValueError(f"Forecast offset out of range: {self.hours}")

    @property
    def code(self) -> str:
        return f"{self.hours:03d}"

    @property
    def label(self) -> str:
        return f"f{self.code}"

    @property
    def description(self) -> str:
        if self.hours == 0:
            return "Current analysis"
        return f"{self.hours} hour forecast"
