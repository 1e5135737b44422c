from app.services.crawl.distances import (
    HALF_MARATHON,
    MARATHON,
    ULTRA_MARATHON,
    format_km,
    label_for_km,
    merge_distances,
    normalize_distances,
)


def test_marathon_by_exact_km():
    assert normalize_distances("Maraton 42,195 km") == [MARATHON]
    assert normalize_distances("42.195 km") == ["Maraton"]


def test_half_marathon_by_word_and_km():
    assert normalize_distances("Półmaraton 21,1 km") == [HALF_MARATHON]
    assert normalize_distances("21.1 km") == ["Półmaraton"]
    assert normalize_distances("polmaraton") == [HALF_MARATHON]
    assert normalize_distances("Half Marathon") == [HALF_MARATHON]


def test_plain_km_values_keep_their_number():
    assert normalize_distances("5 km, 10 km") == ["5 km", "10 km"]
    assert normalize_distances("bieg na 15km") == ["15 km"]
    assert normalize_distances("7,5 km") == ["7.5 km"]


def test_marathon_tolerance_window():
    assert normalize_distances("42 km") == [MARATHON]
    assert normalize_distances("42,4 km") == [MARATHON]
    assert normalize_distances("43 km") == ["43 km"]
    assert normalize_distances("21 km") == [HALF_MARATHON]


def test_ultra_takes_precedence_over_long_km():
    assert normalize_distances("Ultramaraton 100 km") == [ULTRA_MARATHON]
    assert normalize_distances("Bieg ultra 50 km + 10 km") == [ULTRA_MARATHON, "10 km"]


def test_bare_marathon_word_only_without_numbers():
    assert normalize_distances("Maraton Warszawski") == [MARATHON]
    assert normalize_distances("Maraton Warszawski 10 km") == ["10 km"]
    assert normalize_distances("Półmaraton Wiosenny") == [HALF_MARATHON]


def test_empty_and_unrelated_text():
    assert normalize_distances("") == []
    assert normalize_distances(None) == []
    assert normalize_distances("Bieg przełajowy") == []


def test_labels_are_unique():
    assert normalize_distances("10 km / 10 km / 10km") == ["10 km"]


def test_format_and_label_helpers():
    assert format_km(10.0) == "10"
    assert format_km(21.5) == "21.5"
    assert label_for_km(0) is None
    assert label_for_km(42.195) == MARATHON


def test_merge_distances_is_an_ordered_union():
    assert merge_distances(["10 km"], ["5 km", "10 km"], None) == ["10 km", "5 km"]
