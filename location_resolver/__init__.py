from location_resolver.location_resolver import (
    PostcodesIoResolver,
    normalise_postcode,
)
