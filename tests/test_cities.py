from expense_ingest.cities import (
    CITY_PATTERNS,
    CityCatalog,
    CityRecord,
    UnrecognizedCityCounter,
    batch_extract_cities,
    city_stats,
    clean_description,
    extract_city_from_description,
    format_city_display,
)


def test_prefix_name_city_without_comma():
    result = extract_city_from_description("BY SUPERMARKET LOGOYSK")
    assert result.city == "LOGOYSK"
    assert result.clean_description == "Supermarket"
    assert result.confidence > 0.8
    assert result.display_city == "Logoysk"


def test_prefix_name_comma_city():
    result = extract_city_from_description("BY KEBAB FACTORY, MINSK")
    assert result.city == "MINSK"
    assert result.clean_description == "Kebab Factory"
    assert result.pattern == "prefix-name-comma-city"
    assert result.confidence == 1.0


def test_city_glued_to_transport_prefix():
    result = extract_city_from_description("TAXI MINSKBY ORDER 123")
    assert result.city == "MINSK"
    assert result.clean_description == "Order 123"


def test_quoted_city_and_trailing_known_city():
    quoted = extract_city_from_description('Shop "GOMEL" online')
    assert quoted.city == "GOMEL"
    assert quoted.clean_description == "Shop Online"

    trailing = extract_city_from_description("Coffee Minsk")
    assert trailing.city == "MINSK"
    assert trailing.clean_description == "Coffee"
    assert trailing.confidence > 0.6


def test_unknown_tokens_are_not_taken_as_cities():
    result = extract_city_from_description("Lunch, Springfield")
    assert result.city is None
    assert result.confidence == 0.0
    assert result.clean_description == "Lunch, Springfield"

    merchant = extract_city_from_description("BY IP IVANOV")
    assert merchant.city is None
    assert merchant.clean_description == "BY IP IVANOV"


def test_known_city_wins_over_unknown_trailing_word():
    result = extract_city_from_description("BY SHOP, MINSK CENTER")
    assert result.city == "MINSK"
    assert result.pattern == "comma-city"


def test_no_match_keeps_original_text():
    result = extract_city_from_description("Groceries")
    assert result.city is None
    assert result.confidence == 0.0
    assert result.clean_description == "Groceries"


def test_synonym_maps_to_canonical_city():
    catalog = CityCatalog([CityRecord(id="c1", name="Minsk", synonyms=("MENSK",))])
    result = extract_city_from_description("BY CAFE, MENSK", catalog)
    assert result.city == "MINSK"
    assert result.matched_synonym == "MENSK"
    assert result.display_city == "Minsk (Mensk)"
    assert round(result.confidence, 2) == 1.0


def test_catalog_resolution_by_name_then_synonym():
    catalog = CityCatalog([CityRecord(id="c1", name="Minsk", synonyms=("Mensk",))])
    assert catalog.resolve("MINSK").city_id == "c1"
    by_synonym = catalog.resolve(" mensk ")
    assert by_synonym.name == "Minsk"
    assert by_synonym.matched_synonym == "Mensk"
    assert catalog.resolve("Gomel") is None
    assert catalog.is_known("gomel")


def test_patterns_are_ordered_by_confidence():
    confidences = [p.confidence for p in CITY_PATTERNS]
    assert confidences == sorted(confidences, reverse=True)
    assert confidences[:5] == [0.9, 0.8, 0.7, 0.6, 0.5]


def test_display_and_clean_helpers():
    assert format_city_display("NOVOPOLOTSK") == "Novopolotsk"
    assert format_city_display("naro fominsk") == "Naro Fominsk"
    assert clean_description('MN "BEST" SHOP, LIDA', city="LIDA") == "Best Shop"


def test_batch_extract_and_stats():
    descriptions = ["BY SHOP, MINSK", "BY BAR MINSK", "Groceries", "Lunch, Springfield"]
    assert len(batch_extract_cities(descriptions)) == 4
    stats = city_stats(descriptions)
    assert stats.total == 4
    assert stats.with_city == 2
    assert stats.by_city == {"MINSK": 2}


def test_unrecognized_counter_groups_case_insensitively():
    counter = UnrecognizedCityCounter()
    counter.add("Springfield")
    counter.add("SPRINGFIELD", 2)
    counter.add("  ")
    counter.add("Shelbyville")
    seen: list[tuple[str, int]] = []
    assert counter.flush(lambda name, n: seen.append((name, n))) == 2
    assert seen == [("Springfield", 3), ("Shelbyville", 1)]
    assert len(counter) == 0
