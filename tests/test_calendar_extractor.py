from datetime import date

from selectolax.lexbor import LexborHTMLParser

from app.services.crawl.distances import HALF_MARATHON, MARATHON
from app.services.crawl.spiders.calendar_spider import (
    DEFAULT_STRATEGIES,
    LooseBlockStrategy,
    StructuredRowStrategy,
    build_page_url,
    extract_entries,
    parse_detail_page,
)

from conftest import LIST_URL, read_fixture


def test_build_page_url_appends_offset():
    assert build_page_url(LIST_URL, 0) == LIST_URL
    assert build_page_url(LIST_URL, 30) == LIST_URL + "&starty=30"
    assert build_page_url("https://calendar.test/list", 5) == "https://calendar.test/list?starty=5"


def test_table_rows_are_extracted_and_sorted():
    entries = extract_entries(read_fixture("calendar_page_1.html"), base_url=LIST_URL)
    assert [e.date for e in entries] == [date(2025, 5, 3), date(2025, 5, 10), date(2025, 5, 10)]

    first = entries[0]
    assert first.name == "Bieg Wiosenny"
    assert first.city == "Kraków"
    assert first.distances == ["5 km", "10 km"]
    assert first.detail_url == "https://calendar.test/mp_index.php?dzial=3&action=2&code=101"

    by_name = {e.name: e for e in entries}
    assert by_name["DOZ Maraton Łódź"].city == "Łódź"
    assert by_name["DOZ Maraton Łódź"].distances == [MARATHON, "10 km"]
    assert by_name["Półmaraton Warszawski"].city == "Warszawa"
    assert by_name["Półmaraton Warszawski"].distances == [HALF_MARATHON]


def test_rows_without_a_date_are_ignored():
    assert extract_entries(read_fixture("calendar_empty.html"), base_url=LIST_URL) == []
    assert extract_entries("", base_url=LIST_URL) == []


def test_row_without_name_cell_falls_back_to_anchor():
    html = """
    <table>
      <tr><td>2025-07-05</td><td>Opole</td><td>5 km</td><td><a href="/race/1">Bieg Opolski</a></td></tr>
      <tr><td>2025-07-06</td><td>Nysa</td><td></td><td>10 km</td></tr>
    </table>
    """
    entries = extract_entries(html, base_url=LIST_URL)
    assert [e.name for e in entries] == ["Bieg Opolski", ""]
    assert entries[1].city == "Nysa"
    assert entries[1].distances == ["10 km"]
    assert entries[1].detail_url is None


def test_loose_blocks_are_used_when_there_is_no_table():
    doc = LexborHTMLParser(read_fixture("calendar_blocks.html"))
    assert StructuredRowStrategy().extract(doc, base_url=LIST_URL) == []

    entries = extract_entries(read_fixture("calendar_blocks.html"), base_url=LIST_URL)
    assert len(entries) == 2
    first, second = entries
    assert first.date == date(2025, 6, 7)
    assert first.name == "Bieg Świętojański"
    assert first.city == "Gdańsk"
    assert first.distances == ["5 km", "10 km"]
    assert first.detail_url == "https://calendar.test/mp_index.php?dzial=3&action=2&code=201"

    assert second.date == date(2025, 6, 14)
    assert second.name == "Nocny Bieg Uliczny"
    assert second.city == "Wrocław"
    assert second.distances == [HALF_MARATHON]


def test_first_non_empty_strategy_wins():
    class Fixed(LooseBlockStrategy):
        name = "fixed"

        def extract(self, doc, *, base_url):
            return []

    html = read_fixture("calendar_blocks.html")
    assert len(extract_entries(html, base_url=LIST_URL, strategies=(Fixed(), LooseBlockStrategy()))) == 2
    assert extract_entries(html, base_url=LIST_URL, strategies=(Fixed(),)) == []
    assert len(DEFAULT_STRATEGIES) == 2


def test_parse_detail_page():
    info = parse_detail_page(read_fixture("race_detail.html"))
    assert info.name == "Bieg Niepodległości"
    assert info.city == "Gdynia"
    assert info.distances == [HALF_MARATHON, "10 km"]


def test_parse_detail_page_reads_labelled_paragraph():
    html = """
    <html><body><div class="content">
      <h2>Bieg Górski</h2>
      <p>Miejsce: Zakopane, woj. małopolskie</p>
      <p>Trasa 12 km</p>
    </div></body></html>
    """
    info = parse_detail_page(html)
    assert info.name == "Bieg Górski"
    assert info.city == "Zakopane"
    assert info.distances == ["12 km"]
