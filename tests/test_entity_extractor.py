"""
Tests for rule-based entity extraction.

Covers the location rules (landmarks, preposition phrases, City/State pairs,
coordinates, street addresses, known cities), vocabulary matching and
deduplication.
"""
import pytest

from geoquery.analysis.entity_extractor import (
    EntityExtractor,
    ExtractedEntities,
    is_coordinate_location,
    normalize_entity,
    parse_coordinates,
)


@pytest.fixture
def extractor():
    return EntityExtractor()


class TestLocationRules:
    """Each location rule on its own."""

    def test_landmark_after_preposition(self, extractor):
        entities = extractor.extract("Find restaurants near Times Square")
        assert entities.locations == ["Times Square"]

    def test_landmark_strips_leading_command_word(self, extractor):
        entities = extractor.extract("Show Central Park")
        assert entities.locations == ["Central Park"]

    def test_bare_suffix_is_not_a_landmark(self, extractor):
        entities = extractor.extract("Park")
        assert entities.locations == []

    def test_coordinates_are_normalized(self, extractor):
        entities = extractor.extract("coffee near 40.7128, -74.0060")
        assert entities.locations == ["40.7128,-74.0060"]

    def test_out_of_range_coordinates_ignored(self, extractor):
        entities = extractor.extract("coffee near 95.1234,10.5000")
        assert entities.locations == []

    def test_street_address(self, extractor):
        entities = extractor.extract("cafes at 350 Fifth Avenue")
        assert "350 Fifth Avenue" in entities.locations

    def test_city_state_pair(self, extractor):
        entities = extractor.extract("Hotels in Austin, TX")
        assert "Austin, TX" in entities.locations

    def test_known_city_is_case_insensitive(self, extractor):
        entities = extractor.extract("cheap hotels in paris")
        assert entities.locations == ["Paris"]

    def test_overlapping_matches_are_kept(self, extractor):
        entities = extractor.extract("Hotels in Austin, TX")
        # The preposition rule and the City/State rule both fire
        assert entities.locations == ["Austin", "Austin, TX"]


class TestDeduplication:

    def test_same_place_from_two_rules_collapses(self, extractor):
        entities = extractor.extract("museums in Paris")
        assert entities.locations == ["Paris"]

    def test_normalize_entity(self):
        assert normalize_entity("  Times   SQUARE ") == "times square"

    def test_single_mention_yields_single_location(self, extractor):
        entities = extractor.extract("What is the average rating of coffee shops in Austin")
        assert entities.locations == ["Austin"]

    @pytest.mark.parametrize("text,city", [
        ("hotels in Paris near paris, PARIS", "Paris"),
        ("Austin austin AUSTIN cafes", "Austin"),
        ("museums in Berlin and BERLIN and berlin", "Berlin"),
    ])
    def test_case_variants_appear_once(self, extractor, text, city):
        entities = extractor.extract(text)
        assert entities.locations.count(city) == 1
        assert [normalize_entity(loc) for loc in entities.locations].count(city.lower()) == 1

    def test_first_seen_form_wins_over_later_variant(self, extractor):
        # The preposition rule sees "Rio De Janeiro" before the known-city
        # rule yields its canonical "Rio de Janeiro"
        entities = extractor.extract("beaches in Rio De Janeiro and rio de janeiro")
        assert entities.locations == ["Rio De Janeiro"]


class TestVocabulary:

    def test_categories_metrics_and_locations(self, extractor):
        entities = extractor.extract("What is the average rating of coffee shops in Austin")
        assert entities.categories == ["coffee shop"]
        assert entities.metrics == ["average"]

    def test_plural_category_matches(self, extractor):
        entities = extractor.extract("Find restaurants near Times Square")
        assert entities.categories == ["restaurant"]

    def test_timeframes(self, extractor):
        entities = extractor.extract("gas station open today")
        assert entities.categories == ["gas station"]
        assert entities.timeframes == ["today"]

    def test_empty_text(self, extractor):
        assert extractor.extract("") == ExtractedEntities()

    def test_extraction_is_deterministic(self, extractor):
        text = "Find hotels and restaurants near Union Square in San Francisco this week"
        assert extractor.extract(text) == extractor.extract(text)


class TestCoordinateHelpers:

    def test_parse_coordinates(self):
        assert parse_coordinates("40.7128,-74.0060") == (40.7128, -74.006)

    def test_parse_coordinates_rejects_names(self):
        assert parse_coordinates("Times Square") is None

    def test_parse_coordinates_rejects_out_of_range(self):
        assert parse_coordinates("95.0,10.0") is None

    def test_is_coordinate_location(self):
        assert is_coordinate_location(" 1.3521,103.8198 ")
        assert not is_coordinate_location("Singapore")
