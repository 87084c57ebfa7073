"""UK postcode resolution via postcodes.io."""

import asyncio
import logging
import re

import requests
from retry_requests import retry

from weather_models import Location, NotFoundError, ProviderError

POSTCODE_PATTERN = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?[0-9][A-Z]{2}$")


def normalise_postcode(postcode: str) -> str:
    """Remove all whitespace and upper-case, e.g. "sw1a 1aa" -> "SW1A1AA"."""
    return re.sub(r"\s+", "", postcode).upper()


class PostcodesIoResolver:
    """Resolves postcodes to coordinates with the postcodes.io lookup endpoint.

    Unknown or malformed postcodes raise NotFoundError, transport failures and
    other non-success responses raise ProviderError.
    """

    URL = "https://api.postcodes.io/postcodes/"

    def __init__(self, session: requests.Session | None = None, timeout: float = 10.0) -> None:
        self.session = session if session is not None else retry(
            requests.Session(), retries=3, backoff_factor=0.5
        )
        self.timeout = timeout

        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(levelname)s - %(message)s",
        )
        self.logger = logging.getLogger(name=self.__class__.__name__)

    def lookup(self, postcode: str) -> Location:
        """Blocking lookup of one postcode.

        Raises:
            NotFoundError: When the postcode is malformed or unknown.
            ProviderError: On network failures or unexpected responses.
        """
        cleaned = normalise_postcode(postcode)
        if not POSTCODE_PATTERN.match(cleaned):
            raise NotFoundError(f"Not a valid UK postcode: {postcode!r}")

        self.logger.info(f"Looking up postcode {cleaned}")
        try:
            response = self.session.get(f"{PostcodesIoResolver.URL}{cleaned}", timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderError(f"Postcode lookup failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Postcode not found: {postcode}")
        if not response.ok:
            raise ProviderError(
                f"Postcode lookup failed with status {response.status_code}: {response.text}"
            )

        try:
            result = response.json()["result"]
            return Location(
                postcode=result["postcode"],
                latitude=float(result["latitude"]),
                longitude=float(result["longitude"]),
                name=", ".join(
                    part for part in (result.get("admin_district"), result.get("admin_county")) if part
                ),
                region=result.get("region"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderError(f"Unexpected postcode lookup response: {e}") from e

    async def resolve(self, postcode: str) -> Location:
        return await asyncio.to_thread(self.lookup, postcode)
