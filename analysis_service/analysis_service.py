"""Weather Insights Analysis Service

This module wires the external collaborators (postcode resolver, weather
provider) through the request cache into the climate analyzer and exposes
the end-to-end operations used by the API and the command line.

Service Operations:
- locate(postcode): Resolve a postcode (cached for 24h)
- load_series(location): Fetch and validate the daily history (cached for 24h)
- analyse(postcode): Full AnalysisBundle for a postcode
- current_conditions(postcode): Instantaneous readings (cached for 10 minutes)

History Window:
The archive lags behind by archive_delay_days (two by default), so the
history ends that many days before today and starts on 1 January
history_years before that year.

Analysis Sessions:
An AnalysisSession holds the analysis currently shown to one user. Each
start() increments a generation counter; when an awaited fetch returns after
a newer start(), its result is discarded and never becomes the session's
current bundle.

Usage:
    weather-insights "SW1A 1AA"
    weather-insights "SW1A 1AA" --json --config-file config/config.json

Error Handling:
- NotFoundError: Unknown postcode, the analysis aborts
- ProviderError: Upstream failure, the analysis aborts
- MalformedSeriesError: Invalid provider data, the analysis aborts
- InsufficientDataError: Handled by the analyzer, the affected field is None
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Protocol, Sequence

from climate_analysis import AnalysisConfig, ClimateAnalyzer
from location_resolver import PostcodesIoResolver, normalise_postcode
from openmeteo_client import OpenMeteoClientConfig, OpenMeteoWeatherProvider
from request_cache import CacheKey, EndpointKind, RequestCache
from weather_models import (
    AnalysisBundle,
    CurrentConditions,
    Location,
    Parameter,
    WeatherInsightsError,
    WeatherSeries,
    bundle_to_dict,
    freeze,
)

HISTORY_PARAMETERS = tuple(p for p in Parameter if p is not Parameter.UV_INDEX)


class LocationResolver(Protocol):
    async def resolve(self, postcode: str) -> Location: ...


class WeatherProvider(Protocol):
    async def fetch_historical(
        self,
        latitude: float,
        longitude: float,
        start_date: date,
        end_date: date,
        parameters: Sequence[Parameter] | None = None,
    ) -> Dict[str, Any]: ...

    async def fetch_current(self, latitude: float, longitude: float) -> Dict[str, Any]: ...


class ClimateAnalysisService:
    """End-to-end analysis of postcodes.

    The service itself keeps no per-user state and may serve concurrent
    requests; the request cache deduplicates their upstream fetches.

    Attributes:
        resolver (LocationResolver): Postcode resolver.
        provider (WeatherProvider): Weather data provider.
        cache (RequestCache): Shared request cache.
        config (AnalysisConfig): Analysis configuration.
        today (Callable[[], date]): Source of the current date.
    """

    def __init__(
        self,
        resolver: LocationResolver,
        provider: WeatherProvider,
        cache: RequestCache | None = None,
        config: AnalysisConfig | None = None,
        today: Callable[[], date] = date.today,
        parameters: Sequence[Parameter] = HISTORY_PARAMETERS,
    ) -> None:
        self.resolver = resolver
        self.provider = provider
        self.config = config if config is not None else AnalysisConfig()
        self.cache = cache if cache is not None else RequestCache(
            capacity=self.config.cache_capacity, ttls=self.config.cache_ttls
        )
        self.today = today
        self.parameters = tuple(parameters)
        self.analyzer = ClimateAnalyzer(self.config)

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    def history_window(self) -> tuple[date, date]:
        end = self.today() - timedelta(days=self.config.archive_delay_days)
        return date(end.year - self.config.history_years, 1, 1), end

    async def locate(self, postcode: str) -> Location:
        cleaned = normalise_postcode(postcode)
        return await self.cache.get_or_fetch(
            CacheKey(EndpointKind.GEOCODE, cleaned),
            lambda: self.resolver.resolve(cleaned),
        )

    async def load_series(self, location: Location) -> WeatherSeries:
        start, end = self.history_window()
        key = CacheKey(
            EndpointKind.HISTORICAL,
            location.identifier,
            tuple(p.value for p in self.parameters),
            (start, end),
        )

        async def fetch() -> WeatherSeries:
            columns = await self.provider.fetch_historical(
                location.latitude, location.longitude, start, end, self.parameters
            )
            return WeatherSeries.from_columns(columns)

        return await self.cache.get_or_fetch(key, fetch)

    async def analyse(self, postcode: str) -> AnalysisBundle:
        location = await self.locate(postcode)
        series = await self.load_series(location)
        return self.analyzer.analyse(series, location)

    async def current_conditions(self, postcode: str) -> CurrentConditions:
        location = await self.locate(postcode)
        data = await self.cache.get_or_fetch(
            CacheKey(EndpointKind.CURRENT, location.identifier),
            lambda: self.provider.fetch_current(location.latitude, location.longitude),
        )
        return CurrentConditions(
            location=location,
            time=datetime.fromisoformat(data["time"]),
            readings=freeze(data.get("current", {})),
            today=freeze(data.get("daily", {})),
        )


class AnalysisSession:
    """The analysis currently shown to one user.

    Only the most recently started analysis may become current. Results of
    analyses superseded while they were waiting on fetches are discarded, and
    so are their failures.
    """

    def __init__(self, service: ClimateAnalysisService) -> None:
        self.service = service
        self.generation = 0
        self.current: AnalysisBundle | None = None
        self.logger = logging.getLogger(name=self.__class__.__name__)

    async def start(self, postcode: str) -> AnalysisBundle | None:
        """Analyse postcode and make it current.

        Returns:
            AnalysisBundle | None: The new bundle, or None when a newer
                analysis was started in the meantime.

        Raises:
            WeatherInsightsError: When the lookup or fetch fails and no newer
                analysis was started.
        """
        self.generation += 1
        generation = self.generation

        try:
            location = await self.service.locate(postcode)
            if self.__is_stale(generation, postcode):
                return None

            series = await self.service.load_series(location)
            if self.__is_stale(generation, postcode):
                return None
        except WeatherInsightsError:
            if self.__is_stale(generation, postcode):
                return None
            raise

        bundle = self.service.analyzer.analyse(series, location)
        self.current = bundle
        return bundle

    def __is_stale(self, generation: int, postcode: str) -> bool:
        if generation != self.generation:
            self.logger.info(
                f"Discarding stale analysis of {postcode} (generation {generation}, current {self.generation})"
            )
            return True
        return False


def summarise(bundle: AnalysisBundle) -> str:
    location = bundle.location
    lines = [
        f"{location.name} ({location.postcode})" if location else "Unknown location",
        f"{len(bundle.series)} days from {bundle.series.start} to {bundle.series.end}",
    ]
    for period in bundle.yearly:
        readings = [f"{period.days} days"]
        rainfall = period.total(Parameter.RAINFALL)
        if rainfall is not None:
            readings.append(f"rainfall {rainfall:.1f} mm")
        temperature = period.mean(Parameter.TEMPERATURE_MEAN)
        if temperature is not None:
            readings.append(f"mean temperature {temperature:.1f} °C")
        lines.append(f"  {period.label}: {', '.join(readings)}")
    for kind, runs in bundle.runs.items():
        lines.append(f"{kind.value}: {len(runs)} runs")
    for parameter, trend in bundle.trends.items():
        lines.append(f"{parameter.value} trend: {trend.description if trend else 'insufficient data'}")
    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="weather-insights",
        description="Historical weather analysis for a UK postcode.",
    )
    parser.add_argument("postcode", help="UK postcode, e.g. 'SW1A 1AA'")
    parser.add_argument("--config-file", default=None, help="JSON configuration file")
    parser.add_argument("--json", action="store_true", help="Print the full analysis as JSON")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger(name="Weather Insights")

    from_file = args.config_file is not None
    config = AnalysisConfig(create_from_file=from_file, config_file=args.config_file)
    provider = OpenMeteoWeatherProvider(
        OpenMeteoClientConfig(create_from_file=from_file, config_file=args.config_file)
    )
    session = AnalysisSession(ClimateAnalysisService(PostcodesIoResolver(), provider, config=config))

    try:
        bundle = asyncio.run(session.start(args.postcode))
    except WeatherInsightsError as e:
        logger.error(f"Analysis of {args.postcode} failed: {e}")
        return 1

    if args.json:
        print(json.dumps(bundle_to_dict(bundle), indent=2))
    else:
        print(summarise(bundle))
    return 0


if __name__ == "__main__":
    sys.exit(main())
