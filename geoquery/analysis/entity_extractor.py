"""
Rule-based entity extraction for location questions.

Pulls locations, place categories, metrics and timeframes out of raw query text.
Extraction is pure and deterministic: the same text always yields the same
entities in the same order.
"""
import re
import logging
from typing import List, Pattern, Tuple, Callable, Optional
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ExtractedEntities(BaseModel):
    """Structured fields extracted from a query."""
    locations: List[str] = Field(default_factory=list, description="Place names, addresses or 'lat,lon' pairs")
    categories: List[str] = Field(default_factory=list, description="Place categories (restaurant, hotel, ...)")
    metrics: List[str] = Field(default_factory=list, description="Aggregate metrics requested (average, count, ...)")
    timeframes: List[str] = Field(default_factory=list, description="Time windows mentioned (today, this week, ...)")


# ============================================================================
# VOCABULARIES
# ============================================================================

CATEGORIES = [
    "restaurant", "cafe", "coffee shop", "hotel", "gas station",
    "pharmacy", "hospital", "bank", "atm", "grocery store",
]

METRICS = ["average", "count", "sum", "max", "min", "total"]

TIMEFRAMES = ["today", "tomorrow", "this week", "weekend", "next week"]

LANDMARK_SUFFIXES = [
    "Park", "Bridge", "Plaza", "Square", "Center", "Centre", "Station", "Museum",
    "Tower", "Market", "Garden", "Gardens", "Stadium", "Airport", "Beach", "Mall",
    "Hall", "Pier", "Harbor", "Harbour", "Zoo", "Cathedral", "Palace", "Castle",
]

STREET_SUFFIXES = [
    "Street", "St", "Avenue", "Ave", "Road", "Rd", "Boulevard", "Blvd",
    "Drive", "Dr", "Lane", "Ln", "Way", "Place", "Pl", "Court", "Ct",
]

US_STATE_NAMES = {
    "Alabama", "Alaska", "Arizona", "Arkansas", "California", "Colorado", "Connecticut",
    "Delaware", "Florida", "Georgia", "Hawaii", "Idaho", "Illinois", "Indiana", "Iowa",
    "Kansas", "Kentucky", "Louisiana", "Maine", "Maryland", "Massachusetts", "Michigan",
    "Minnesota", "Mississippi", "Missouri", "Montana", "Nebraska", "Nevada",
    "New Hampshire", "New Jersey", "New Mexico", "New York", "North Carolina",
    "North Dakota", "Ohio", "Oklahoma", "Oregon", "Pennsylvania", "Rhode Island",
    "South Carolina", "South Dakota", "Tennessee", "Texas", "Utah", "Vermont",
    "Virginia", "Washington", "West Virginia", "Wisconsin", "Wyoming",
}

KNOWN_CITIES = [
    "New York", "Los Angeles", "San Francisco", "San Diego", "San Jose", "Chicago",
    "Houston", "Austin", "Dallas", "San Antonio", "Seattle", "Portland", "Denver",
    "Boston", "Miami", "Atlanta", "Philadelphia", "Phoenix", "Las Vegas", "Nashville",
    "New Orleans", "Washington", "Detroit", "Minneapolis", "Orlando", "Toronto",
    "Vancouver", "Montreal", "Mexico City", "London", "Paris", "Berlin", "Madrid",
    "Barcelona", "Rome", "Milan", "Amsterdam", "Brussels", "Vienna", "Prague",
    "Lisbon", "Dublin", "Stockholm", "Copenhagen", "Oslo", "Zurich", "Istanbul",
    "Dubai", "Mumbai", "Delhi", "Bangalore", "Singapore", "Kuala Lumpur", "Bangkok",
    "Jakarta", "Manila", "Hong Kong", "Shanghai", "Beijing", "Tokyo", "Osaka",
    "Seoul", "Sydney", "Melbourne", "Auckland", "Cairo", "Nairobi", "Cape Town",
    "Johannesburg", "Lagos", "Sao Paulo", "Rio de Janeiro", "Buenos Aires", "Lima",
]

# Capitalized words that start a sentence but never start a place name.
COMMAND_WORDS = {
    "find", "show", "search", "locate", "look", "get", "list", "map", "plot",
    "visualize", "tell", "give", "compare", "explain", "describe", "analyze",
    "what", "where", "which", "how", "are", "is", "me", "please",
}


# ============================================================================
# LOCATION RULES
# ============================================================================

_CAPITALIZED_PHRASE = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"

_LANDMARK_PATTERN = re.compile(
    r"\b((?:[A-Z][a-z]+\s+)+(?:" + "|".join(LANDMARK_SUFFIXES) + r"))\b"
)

_PREPOSITION_PATTERN = re.compile(
    r"\b(?i:in|near|at|around|by)\s+(" + _CAPITALIZED_PHRASE + r")"
)

_CITY_STATE_PATTERN = re.compile(
    r"\b(" + _CAPITALIZED_PHRASE + r"),\s*([A-Z]{2}\b|" + _CAPITALIZED_PHRASE + r")"
)

_COORDINATE_PATTERN = re.compile(
    r"(?<![\d.])(-?\d{1,2}\.\d+)\s*,\s*(-?\d{1,3}\.\d+)(?![\d.])"
)

_ADDRESS_PATTERN = re.compile(
    r"\b(\d{1,6}\s+(?:[A-Z][a-z]+\s+)+(?:" + "|".join(STREET_SUFFIXES) + r"))\b"
)

_KNOWN_CITY_PATTERNS: List[Tuple[str, Pattern]] = [
    (city, re.compile(r"\b" + re.escape(city) + r"\b", re.IGNORECASE))
    for city in KNOWN_CITIES
]


def _strip_command_words(phrase: str) -> Optional[str]:
    """Drop leading sentence verbs ('Find', 'Show me') captured with a place name."""
    words = phrase.split()
    while words and words[0].lower() in COMMAND_WORDS:
        words.pop(0)
    return " ".join(words) if words else None


def _match_landmarks(text: str) -> List[str]:
    matches = []
    for match in _LANDMARK_PATTERN.finditer(text):
        phrase = _strip_command_words(match.group(1))
        # A bare suffix ("Park") left after stripping is not a landmark
        if phrase and len(phrase.split()) > 1:
            matches.append(phrase)
    return matches


def _match_prepositions(text: str) -> List[str]:
    matches = []
    for match in _PREPOSITION_PATTERN.finditer(text):
        phrase = _strip_command_words(match.group(1))
        if phrase:
            matches.append(phrase)
    return matches


def _match_city_state(text: str) -> List[str]:
    matches = []
    for match in _CITY_STATE_PATTERN.finditer(text):
        city = _strip_command_words(match.group(1))
        state = match.group(2)
        if not city:
            continue
        if (len(state) == 2 and state.isupper()) or state in US_STATE_NAMES:
            matches.append(f"{city}, {state}")
    return matches


def _match_coordinates(text: str) -> List[str]:
    matches = []
    for match in _COORDINATE_PATTERN.finditer(text):
        lat, lon = match.group(1), match.group(2)
        if abs(float(lat)) <= 90 and abs(float(lon)) <= 180:
            matches.append(f"{lat},{lon}")
    return matches


def _match_addresses(text: str) -> List[str]:
    return [match.group(1) for match in _ADDRESS_PATTERN.finditer(text)]


def _match_known_cities(text: str) -> List[str]:
    found = []
    for city, pattern in _KNOWN_CITY_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append((match.start(), city))
    return [city for _, city in sorted(found)]


# Applied in this order; earlier rules win the first-seen form on dedup.
LOCATION_RULES: List[Tuple[str, Callable[[str], List[str]]]] = [
    ("landmark", _match_landmarks),
    ("preposition", _match_prepositions),
    ("city_state", _match_city_state),
    ("coordinates", _match_coordinates),
    ("address", _match_addresses),
    ("known_city", _match_known_cities),
]


def normalize_entity(value: str) -> str:
    """Case- and whitespace-insensitive form used for deduplication."""
    return " ".join(value.split()).lower()


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    unique = []
    for value in values:
        key = normalize_entity(value)
        if key and key not in seen:
            seen.add(key)
            unique.append(" ".join(value.split()))
    return unique


def _match_vocabulary(text_lower: str, vocabulary: List[str]) -> List[str]:
    return [term for term in vocabulary if term in text_lower]


# ============================================================================
# EXTRACTOR
# ============================================================================

class EntityExtractor:
    """
    Extracts locations, categories, metrics and timeframes from query text.

    Location rules run in a fixed order (landmarks, preposition phrases,
    City/State pairs, coordinates, street addresses, known cities). Overlapping
    matches from different rules are all kept; only exact duplicates after
    case/whitespace normalization are collapsed.
    """

    def extract(self, text: str) -> ExtractedEntities:
        if not text:
            return ExtractedEntities()

        locations: List[str] = []
        for rule_name, rule in LOCATION_RULES:
            matched = rule(text)
            if matched:
                logger.debug(f"Location rule '{rule_name}' matched {len(matched)} value(s)")
            locations.extend(matched)

        text_lower = text.lower()

        return ExtractedEntities(
            locations=_dedupe(locations),
            categories=_match_vocabulary(text_lower, CATEGORIES),
            metrics=_match_vocabulary(text_lower, METRICS),
            timeframes=_match_vocabulary(text_lower, TIMEFRAMES),
        )


def is_coordinate_location(location: str) -> bool:
    """True for 'lat,lon' strings produced by the coordinate rule or context enrichment."""
    return parse_coordinates(location) is not None


def parse_coordinates(location: str) -> Optional[Tuple[float, float]]:
    """Parse a 'lat,lon' string into floats, or None if it is not one."""
    match = _COORDINATE_PATTERN.fullmatch(location.strip())
    if not match:
        return None
    lat, lon = float(match.group(1)), float(match.group(2))
    if abs(lat) > 90 or abs(lon) > 180:
        return None
    return lat, lon
