"""Weather tools backed by the National Weather Service.

Each tool takes a ``location`` in ``lat,lon`` form. Bad input and upstream
failures come back as ``"Error: ..."`` strings so the model can read them.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from relaychat.tools.base import Tool, ToolRegistry
from relaychat.tools.nws import NwsClient

_COORDINATES = re.compile(r"(-?[0-9]+\.?[0-9]*),\s*(-?[0-9]+\.?[0-9]*)")

_LOCATION_DESCRIPTION = 'Location coordinates in lat,lon format (e.g., "40.7128,-74.0060")'

LOCATION_TYPE_ERROR = "Error: Location must be a string"
LOCATION_FORMAT_ERROR = "Error: Location must be in lat,lon format (e.g., '40.7128,-74.0060')"
DAYS_RANGE_ERROR = "Error: Days must be a number between 1 and 7"
FORECAST_UNAVAILABLE = "Error: Unable to get forecast data for this location"
NO_FORECAST_PERIODS = "Error: No forecast data available"


class LocationArgs(BaseModel):
    location: str = Field(description=_LOCATION_DESCRIPTION)


class ForecastArgs(BaseModel):
    location: str = Field(description=_LOCATION_DESCRIPTION)
    days: float | None = Field(
        default=None,
        ge=1,
        le=7,
        description="Number of forecast days (1-7, default: 5)",
    )


def format_number(value: float) -> str:
    """Render a number the way a JavaScript string template does.

    Uses the shortest round-trip digits, in positional form for decimal
    exponents from -6 to 21 and in ``1e-7`` / ``1e+21`` form outside it.
    """
    value = float(value)
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(map(str, digit_tuple)).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if n - 1 >= 0 else '-'}{abs(n - 1)}"
    return sign + text


def parse_coordinates(location: Any) -> tuple[str, str] | str:
    """Parse ``"lat,lon"`` into normalized ``(lat, lon)`` text, or return an error string.

    Numbers are echoed after a float round trip, so ``"-74.0060"`` becomes
    ``"-74.006"``.
    """
    if not isinstance(location, str):
        return LOCATION_TYPE_ERROR
    match = _COORDINATES.fullmatch(location)
    if not match:
        return LOCATION_FORMAT_ERROR
    lat = format_number(float(match.group(1)))
    lon = format_number(float(match.group(2)))
    return lat, lon


def _valid_days(days: Any) -> bool:
    if isinstance(days, bool) or not isinstance(days, (int, float)):
        return False
    return 1 <= days <= 7


def _period_field(period: dict[str, Any], key: str, default: str) -> Any:
    return period.get(key) or default


class _WeatherTool(Tool):
    def __init__(self, nws: NwsClient) -> None:
        self.nws = nws

    async def _forecast_periods(self, coords: str) -> list[dict[str, Any]] | str:
        points = await self.nws.get_json(self.nws.points_url(coords))
        forecast_url = ((points or {}).get("properties") or {}).get("forecast")
        if not forecast_url:
            return FORECAST_UNAVAILABLE

        forecast = await self.nws.get_json(forecast_url)
        periods = ((forecast or {}).get("properties") or {}).get("periods") or []
        if not periods:
            return NO_FORECAST_PERIODS
        return periods


class CurrentWeatherTool(_WeatherTool):
    @property
    def name(self) -> str:
        return "get_current_weather"

    @property
    def description(self) -> str:
        return "Get current weather conditions for a specified location using National Weather Service data"

    @property
    def args_model(self) -> type[BaseModel]:
        return LocationArgs

    async def execute(self, arguments: dict[str, Any], context: dict[str, Any] | None = None) -> str:
        parsed = parse_coordinates(arguments.get("location"))
        if isinstance(parsed, str):
            return parsed
        coords = ",".join(parsed)

        periods = await self._forecast_periods(coords)
        if isinstance(periods, str):
            return periods

        current = periods[0]
        return "\n".join([
            f"Current conditions for {coords}:",
            f"{_period_field(current, 'name', 'Now')}: "
            f"{_period_field(current, 'temperature', 'Unknown')}°"
            f"{_period_field(current, 'temperatureUnit', 'F')}",
            f"Wind: {_period_field(current, 'windSpeed', 'Unknown')} "
            f"{_period_field(current, 'windDirection', '')}",
            f"Conditions: {_period_field(current, 'shortForecast', 'Unknown')}",
        ])


class WeatherForecastTool(_WeatherTool):
    default_days = 5

    @property
    def name(self) -> str:
        return "get_weather_forecast"

    @property
    def description(self) -> str:
        return "Get weather forecast for a specified location using National Weather Service data"

    @property
    def args_model(self) -> type[BaseModel]:
        return ForecastArgs

    async def execute(self, arguments: dict[str, Any], context: dict[str, Any] | None = None) -> str:
        days = arguments.get("days")
        if days is None:
            days = self.default_days
        if not isinstance(arguments.get("location"), str):
            return LOCATION_TYPE_ERROR
        if not _valid_days(days):
            return DAYS_RANGE_ERROR

        parsed = parse_coordinates(arguments["location"])
        if isinstance(parsed, str):
            return parsed
        coords = ",".join(parsed)

        periods = await self._forecast_periods(coords)
        if isinstance(periods, str):
            return periods

        # NWS reports a day and a night period per day
        lines = [
            f"{_period_field(p, 'name', 'Unknown')}: "
            f"{_period_field(p, 'temperature', 'Unknown')}°{_period_field(p, 'temperatureUnit', 'F')}, "
            f"{_period_field(p, 'shortForecast', 'Unknown')}"
            for p in periods[: int(days * 2)]
        ]
        return f"{format_number(days)}-day forecast for {coords}:\n" + "\n".join(lines)


class WeatherAlertsTool(_WeatherTool):
    @property
    def name(self) -> str:
        return "get_weather_alerts"

    @property
    def description(self) -> str:
        return (
            "Get active weather alerts and warnings for a specified location "
            "using National Weather Service data"
        )

    @property
    def args_model(self) -> type[BaseModel]:
        return LocationArgs

    async def execute(self, arguments: dict[str, Any], context: dict[str, Any] | None = None) -> str:
        parsed = parse_coordinates(arguments.get("location"))
        if isinstance(parsed, str):
            return parsed
        coords = ",".join(parsed)

        alerts = await self.nws.get_json(self.nws.alerts_url(coords))
        features = (alerts or {}).get("features") or []
        if not features:
            return f"No active weather alerts for {coords}"

        text = "\n".join(_format_alert(feature) for feature in features)
        return f"Active weather alerts for {coords}:\n\n{text}"


def _format_alert(feature: dict[str, Any]) -> str:
    props = feature.get("properties") or {}
    return "\n".join([
        f"Event: {props.get('event') or 'Unknown'}",
        f"Area: {props.get('areaDesc') or 'Unknown'}",
        f"Severity: {props.get('severity') or 'Unknown'}",
        f"Status: {props.get('status') or 'Unknown'}",
        f"Headline: {props.get('headline') or 'No headline'}",
        "---",
    ])


def build_weather_registry(nws: NwsClient) -> ToolRegistry:
    """Build the frozen registry served by the tool gateway."""
    registry = ToolRegistry()
    registry.register(CurrentWeatherTool(nws))
    registry.register(WeatherForecastTool(nws))
    registry.register(WeatherAlertsTool(nws))
    return registry.freeze()
