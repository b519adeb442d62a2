"""Weather risk analysis and forecast records."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from weatherguard.models.common import ResourceRecord, WireModel


class RiskLevel:
    """Risk level values used by the analysis index."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    ELEVATED = (HIGH, CRITICAL)


class WeatherRiskAnalysis(ResourceRecord):
    """Scored weather risk for a project (optionally a single task)."""

    project_id: str
    task_id: Optional[str] = None
    analysis_date: Optional[datetime] = None
    latitude: float = 0
    longitude: float = 0
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    risk_level: str = RiskLevel.LOW
    risk_score: float = 0
    weather_condition: str = ""
    impact_description: str = ""
    recommended_actions: List[str] = Field(default_factory=list)
    alternative_schedule: Optional[str] = None
    cost_impact: Optional[float] = None
    delay_risk: float = 0
    created_by: Optional[str] = None


class Temperature(WireModel):
    min: float
    max: float
    average: float


class Precipitation(WireModel):
    probability: float
    amount: float


class WeatherForecast(WireModel):
    """One day of forecast data."""

    date: str
    temperature: Temperature
    humidity: float
    precipitation: Precipitation
    wind_speed: float
    wind_direction: float
    condition: str
    visibility: float
    uv_index: float
    pressure: float


class ForecastEntry(WireModel):
    """Stored form of a forecast sub-cache entry."""

    data: List[WeatherForecast]
    expires_at: datetime
