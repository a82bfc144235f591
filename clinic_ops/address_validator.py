"""Geocoding of patient home addresses through Google Address Validation."""

import os
from dataclasses import dataclass

import requests
from dotenv import load_dotenv

load_dotenv(override=True)

API_KEY = os.getenv("MAP_API_KEY")
API_URL = "https://addressvalidation.googleapis.com/v1:validateAddress"


class AddressValidationError(Exception):
    """Raised when an address cannot be validated or geocoded."""
    pass


@dataclass
class GeocodedAddress:
    formatted_address: str | None
    latitude: float | None
    longitude: float | None
    verdict: str
    is_valid: bool


def format_address(
    address_line1: str,
    city: str,
    state: str,
    zip_code: str,
    address_line2: str | None = None,
) -> str:
    """Join address components into the single line the API expects."""
    parts = [address_line1]
    if address_line2:
        parts.append(address_line2)
    parts.append(f"{city}, {state} {zip_code}")
    return ", ".join(parts)


def validate_address_raw(address: str) -> dict:
    """
    Call the Address Validation API and return its `result` object.

    Raises AddressValidationError for empty input, a missing API key,
    transport failures and non-200 responses.
    """
    if not address or not address.strip():
        raise AddressValidationError("Address cannot be empty")

    if not API_KEY:
        raise AddressValidationError("MAP_API_KEY environment variable not set")

    payload = {"address": {"addressLines": [address.strip()]}}

    try:
        response = requests.post(API_URL, json=payload, params={"key": API_KEY}, timeout=10)
    except requests.exceptions.Timeout:
        raise AddressValidationError("API request timed out")
    except requests.exceptions.ConnectionError:
        raise AddressValidationError("Failed to connect to API")

    if response.status_code == 400:
        raise AddressValidationError("Invalid request format")
    elif response.status_code == 403:
        raise AddressValidationError("API key invalid or Address Validation API not enabled")
    elif response.status_code != 200:
        raise AddressValidationError(f"API error: {response.status_code}")

    data = response.json()
    if "result" not in data:
        raise AddressValidationError("Unexpected API response format")
    return data["result"]


def geocode_address(
    address_line1: str,
    city: str,
    state: str,
    zip_code: str,
    address_line2: str | None = None,
) -> GeocodedAddress:
    """Validate a home address and return its coordinates."""
    result = validate_address_raw(
        format_address(address_line1, city, state, zip_code, address_line2)
    )
    verdict = result.get("verdict", {})
    location = result.get("geocode", {}).get("location", {})

    if "latitude" not in location or "longitude" not in location:
        raise AddressValidationError("Address could not be geocoded")

    return GeocodedAddress(
        formatted_address=result.get("address", {}).get("formattedAddress"),
        latitude=location["latitude"],
        longitude=location["longitude"],
        verdict=verdict.get("possibleNextAction", "UNKNOWN"),
        is_valid=verdict.get("possibleNextAction") == "ACCEPT",
    )
