"""
time_engine.py — Production, transport and buffer hours for a scored job.

Formula:
    production_hours = adjusted_score / production_rate_pph
    transport_hours  = drive_time_minutes / 60 × 2          (round trip)
    buffer_hours     = buffer_pct × production_hours        (default 10 %)
    total_hours      = max(production + transport + buffer, minimum_hours or 0)

The transport rate never scales hours. It is carried on the estimate and
only weights the cost of the transport hours (``TimeEstimate.transport_cost``).
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from treeshop.services.errors import InvalidInputError
from treeshop.services.settings import DEFAULT_SETTINGS, PricingSettings, ServiceType

logger = logging.getLogger("treeshop.time")


@dataclass(frozen=True)
class TimeEstimate:
    production_hours: float
    transport_hours: float
    buffer_hours: float
    total_estimated_hours: float
    minimum_hours: Optional[float] = None
    minimum_applied: bool = False
    transport_rate: Optional[float] = None
    production_rate_pph: float = 0.0
    drive_time_minutes: float = 0.0

    @property
    def calculated_hours(self) -> float:
        """Sum of the three components before the minimum-hours floor."""
        return self.production_hours + self.transport_hours + self.buffer_hours

    def transport_cost(self, cost_per_hour: float) -> float:
        """Transport hours × cost/hr × transport rate (rate 1.0 when unset)."""
        rate = 1.0 if self.transport_rate is None else self.transport_rate
        return self.transport_hours * cost_per_hour * rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "production_hours": round(self.production_hours, 4),
            "transport_hours": round(self.transport_hours, 4),
            "buffer_hours": round(self.buffer_hours, 4),
            "total_estimated_hours": round(self.total_estimated_hours, 4),
            "minimum_hours": self.minimum_hours,
            "minimum_applied": self.minimum_applied,
            "transport_rate": self.transport_rate,
            "production_rate_pph": self.production_rate_pph,
            "drive_time_minutes": self.drive_time_minutes,
        }


class TimeEstimator:
    """Converts an adjusted score into estimated crew hours."""

    def __init__(self, settings: Optional[PricingSettings] = None) -> None:
        self.settings = settings or DEFAULT_SETTINGS

    def estimate_time(
        self,
        adjusted_score: float,
        production_rate_pph: float,
        drive_time_minutes: float = 0.0,
        transport_rate: Optional[float] = None,
        minimum_hours: Optional[float] = None,
    ) -> TimeEstimate:
        if not math.isfinite(production_rate_pph) or production_rate_pph <= 0:
            raise InvalidInputError(
                f"production_rate_pph must be finite and positive; received {production_rate_pph}"
            )
        if not math.isfinite(adjusted_score) or adjusted_score < 0:
            raise InvalidInputError(f"adjusted_score must be finite and >= 0; received {adjusted_score}")
        if not math.isfinite(drive_time_minutes) or drive_time_minutes < 0:
            raise InvalidInputError(
                f"drive_time_minutes must be finite and >= 0; received {drive_time_minutes}"
            )
        if minimum_hours is not None and not (math.isfinite(minimum_hours) and minimum_hours >= 0):
            raise InvalidInputError(f"minimum_hours must be finite and >= 0; received {minimum_hours}")

        production = adjusted_score / production_rate_pph
        transport = drive_time_minutes / 60.0 * 2.0
        buffer = self.settings.buffer_pct * production
        calculated = production + transport + buffer
        if not math.isfinite(calculated):
            raise InvalidInputError(
                f"Estimated hours overflowed for score {adjusted_score} at {production_rate_pph} PPH"
            )

        floor = minimum_hours or 0.0
        minimum_applied = floor > calculated
        total = floor if minimum_applied else calculated
        if minimum_applied:
            logger.info(
                "minimum hours applied: calculated %.2f h raised to %.2f h", calculated, floor
            )

        return TimeEstimate(
            production_hours=production,
            transport_hours=transport,
            buffer_hours=buffer,
            total_estimated_hours=total,
            minimum_hours=minimum_hours,
            minimum_applied=minimum_applied,
            transport_rate=transport_rate,
            production_rate_pph=production_rate_pph,
            drive_time_minutes=drive_time_minutes,
        )

    def estimate_for_service(
        self,
        service_type: Any,
        adjusted_score: float,
        production_rate_pph: float,
        drive_time_minutes: float = 0.0,
    ) -> TimeEstimate:
        """Same as ``estimate_time`` with the service's minimum hours and transport rate."""
        st = ServiceType.parse(service_type)
        return self.estimate_time(
            adjusted_score,
            production_rate_pph,
            drive_time_minutes,
            transport_rate=self.settings.transport_rate_for(st),
            minimum_hours=self.settings.minimum_hours_for(st),
        )


_default_estimator = TimeEstimator()


def estimate_time(
    adjusted_score: float,
    production_rate_pph: float,
    drive_time_minutes: float = 0.0,
    transport_rate: Optional[float] = None,
    minimum_hours: Optional[float] = None,
) -> TimeEstimate:
    """Module-level entry point using the default settings."""
    return _default_estimator.estimate_time(
        adjusted_score, production_rate_pph, drive_time_minutes, transport_rate, minimum_hours
    )
