import logging

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY = "US"

COUNTRY_CODES = {
    "united states": "US",
    "usa": "US",
    "united kingdom": "GB",
    "uk": "GB",
    "pakistan": "PK",
    "india": "IN",
    "canada": "CA",
    "australia": "AU",
    "germany": "DE",
    "france": "FR",
    "spain": "ES",
    "italy": "IT",
    "japan": "JP",
    "china": "CN",
    "brazil": "BR",
    "mexico": "MX",
    "russia": "RU",
    "south africa": "ZA",
    "nigeria": "NG",
    "egypt": "EG",
    "saudi arabia": "SA",
    "uae": "AE",
    "united arab emirates": "AE",
    "turkey": "TR",
    "netherlands": "NL",
    "belgium": "BE",
    "switzerland": "CH",
    "sweden": "SE",
    "norway": "NO",
    "denmark": "DK",
    "poland": "PL",
    "ireland": "IE",
    "new zealand": "NZ",
    "singapore": "SG",
    "malaysia": "MY",
    "indonesia": "ID",
    "philippines": "PH",
    "thailand": "TH",
    "vietnam": "VN",
    "south korea": "KR",
    "argentina": "AR",
    "chile": "CL",
    "colombia": "CO",
    "portugal": "PT",
    "greece": "GR",
    "czech republic": "CZ",
    "austria": "AT",
    "romania": "RO",
    "hungary": "HU",
    "israel": "IL",
    "bangladesh": "BD",
    "sri lanka": "LK",
    "nepal": "NP",
}


def convert_country_to_iso(country):
    """
    Normalize a free-text country into an ISO 3166-1 alpha-2 code.

    Two-letter input is taken as already being a code. Unknown names fall
    back to ``US`` so a charge is never blocked on address data.
    """
    value = (country or "").strip()
    if len(value) == 2:
        return value.upper()

    code = COUNTRY_CODES.get(value.lower())
    if code:
        return code

    logger.warning(
        "Unknown country, falling back to default",
        extra={"country": value, "fallback": DEFAULT_COUNTRY},
    )
    return DEFAULT_COUNTRY
