"""Tests for tiered metadata resolution and cover lookup."""

from unittest.mock import Mock
from urllib.parse import urlencode

import pytest

from src.metadata import (
    PLACEHOLDER_COVER,
    BookMetadata,
    CoverResolver,
    MetadataResolver,
    OpenLibraryClient,
    SourceTier,
    candidate_cover_urls,
    doc_to_metadata,
    parse_product_page,
    validation_issue,
)
from src.metadata.openlibrary import SEARCH_FIELDS
from src.network import ResponseCache

from conftest import html_response, json_response, make_response


PRODUCT_URL = "https://www.amazon.com/Shoe-Dog-Memoir/dp/1501135910"
SHOE_DOG = {
    "title": "Shoe Dog",
    "author_name": ["Phil Knight"],
    "cover_i": 8231990,
    "subject": ["Biography", "Business", "Biography"],
    "isbn": ["1501135910"],
    "key": "/works/OL17797788W",
    "first_publish_year": 2016,
}


def search_url(**params):
    return f"https://openlibrary.org/search.json?{urlencode({**params, 'fields': SEARCH_FIELDS})}"


@pytest.fixture
def resolver(guard, retry_policy, sleeps):
    cache = ResponseCache(ttl=60, clock=lambda: 0.0)
    return MetadataResolver(
        OpenLibraryClient(guard, retry_policy, cache),
        CoverResolver(guard, cache),
        guard,
        retry_policy,
        sleep=sleeps.append,
    )


class TestDocToMetadata:
    def test_maps_catalog_fields(self):
        metadata = doc_to_metadata(SHOE_DOG)

        assert metadata.title == "Shoe Dog"
        assert metadata.author == "Phil Knight"
        assert metadata.cover_url == "https://covers.openlibrary.org/b/id/8231990-L.jpg"
        assert metadata.subjects == ("Biography", "Business")
        assert metadata.source_tier == SourceTier.PRIMARY
        assert metadata.work_key == "OL17797788W"

    def test_missing_fields_become_sentinels(self):
        metadata = doc_to_metadata({})

        assert metadata.title == "Unknown Title"
        assert metadata.author == "Unknown Author"
        assert metadata.cover_url is None


class TestOpenLibraryLookup:
    def test_product_id_query_wins(self, guard, session, retry_policy):
        session.routes[search_url(q="1501135910")] = json_response({"docs": [SHOE_DOG]})
        client = OpenLibraryClient(guard, retry_policy)

        metadata = client.lookup("1501135910", "Shoe Dog Memoir")

        assert metadata.title == "Shoe Dog"
        assert session.urls() == [search_url(q="1501135910")]

    def test_title_search_requires_exact_match(self, guard, session, retry_policy):
        session.routes[search_url(q="1501135910")] = json_response({"docs": []})
        session.routes[search_url(title="shoe dog")] = json_response(
            {"docs": [{"title": "Shoe Dog Companion", "author_name": ["Someone"]}, SHOE_DOG]}
        )
        client = OpenLibraryClient(guard, retry_policy)

        metadata = client.lookup("1501135910", "shoe dog")

        assert metadata.author == "Phil Knight"

    def test_free_text_search_is_last_resort(self, guard, session, retry_policy):
        session.routes[search_url(title="Shoe Dog")] = json_response({"docs": [{"title": "Other"}]})
        session.routes[search_url(q="Shoe Dog")] = json_response({"docs": [SHOE_DOG]})
        client = OpenLibraryClient(guard, retry_policy)

        metadata = client.lookup(None, "Shoe Dog")

        assert metadata.title == "Shoe Dog"
        assert session.urls()[-1] == search_url(q="Shoe Dog")

    def test_repeated_queries_are_cached(self, guard, session, retry_policy):
        session.routes[search_url(q="1501135910")] = json_response({"docs": [SHOE_DOG]})
        client = OpenLibraryClient(guard, retry_policy)

        client.lookup("1501135910", None)
        client.lookup("1501135910", None)

        assert len(session.calls) == 1


class TestProductPage:
    def test_parses_title_and_author(self):
        html = """
        <span id="productTitle">  Shoe Dog:   A Memoir </span>
        <span class="author"><a>by Phil Knight</a></span>
        """

        assert parse_product_page(html) == ("Shoe Dog: A Memoir", "Phil Knight")

    def test_meta_fallbacks(self):
        html = '<meta name="title" content="Shoe Dog"><meta name="author" content="Phil Knight">'

        assert parse_product_page(html) == ("Shoe Dog", "Phil Knight")

    def test_missing_author_is_unknown(self):
        assert parse_product_page('<h1 class="product-title">Shoe Dog</h1>') == ("Shoe Dog", "Unknown Author")

    def test_no_title(self):
        assert parse_product_page("<html><body>Robot check</body></html>") is None


class TestValidationGate:
    @pytest.mark.parametrize(
        "title, author",
        [("Dp", "Someone"), ("Coca-Cola", "Someone"), ("Unknown Title", "Phil Knight"), ("Shoe Dog", "Unknown Author")],
    )
    def test_rejects_implausible_metadata(self, title, author):
        assert validation_issue(BookMetadata(title=title, author=author)) is not None

    def test_accepts_plausible_metadata(self):
        assert validation_issue(BookMetadata(title="Shoe Dog", author="Phil Knight")) is None


class TestCovers:
    def test_candidates_include_isbn_source_only_for_isbn_ids(self):
        assert len(candidate_cover_urls("B00TEST000")) == 2
        assert candidate_cover_urls("1501135910")[-1] == (
            "https://covers.openlibrary.org/b/isbn/1501135910-L.jpg?default=false"
        )

    def test_api_cover_wins(self, guard, session):
        covers = CoverResolver(guard)

        assert covers.resolve("B00TEST000", "https://covers.openlibrary.org/b/id/1-L.jpg").endswith("1-L.jpg")
        assert session.calls == []

    def test_tracking_pixel_is_not_a_cover(self, guard, session):
        pixel, real = candidate_cover_urls("B00TEST000")
        session.routes[("HEAD", pixel)] = make_response(200, headers={"Content-Type": "image/gif", "Content-Length": "43"})
        session.routes[("HEAD", real)] = make_response(200, headers={"Content-Type": "image/jpeg", "Content-Length": "20480"})

        assert CoverResolver(guard).resolve("B00TEST000") == real

    def test_isbn_cover_redirected_to_archive_host(self, guard, session):
        isbn_cover = candidate_cover_urls("1501135910")[-1]
        archived = "https://ia800100.us.archive.org/view_archive.php?archive=/x/m_covers.zip&file=1501135910-L.jpg"
        session.routes[("HEAD", isbn_cover)] = make_response(302, headers={"Location": archived})
        session.routes[("HEAD", archived)] = make_response(
            200, headers={"Content-Type": "image/jpeg", "Content-Length": "20480"}
        )

        assert CoverResolver(guard).resolve("1501135910") == isbn_cover
        assert session.urls("HEAD")[-2:] == [isbn_cover, archived]

    def test_placeholder_when_nothing_found(self, guard):
        assert CoverResolver(guard).resolve("B00TEST000") == PLACEHOLDER_COVER
        assert CoverResolver(guard).resolve(None) == PLACEHOLDER_COVER


class TestMetadataResolver:
    def test_primary_tier(self, resolver, session):
        session.routes[search_url(q="1501135910")] = json_response({"docs": [SHOE_DOG]})

        metadata = resolver.resolve(PRODUCT_URL)

        assert metadata.source_tier == SourceTier.PRIMARY
        assert metadata.cover_url == "https://covers.openlibrary.org/b/id/8231990-L.jpg"

    def test_falls_back_to_product_page_then_placeholder_cover(self, resolver, session):
        session.routes[PRODUCT_URL] = html_response(
            '<span id="productTitle">Shoe Dog</span><a data-a-target="authorLink">Phil Knight</a>'
        )

        metadata = resolver.resolve(PRODUCT_URL)

        assert metadata.source_tier == SourceTier.PAGE_SCRAPE
        assert metadata.title == "Shoe Dog"
        assert metadata.cover_url == PLACEHOLDER_COVER
        get_urls = session.urls("GET")
        assert get_urls.index(search_url(q="1501135910")) < get_urls.index(PRODUCT_URL)

    def test_returns_none_when_every_tier_fails(self, resolver):
        assert resolver.resolve(PRODUCT_URL) is None

    def test_batch_collects_issues_and_transient_domains(self, resolver, session):
        session.routes[search_url(q="1501135910")] = json_response({"docs": [SHOE_DOG]})
        session.routes[search_url(q="B00BADBAD0")] = make_response(503)
        bad_url = "https://www.amazon.com/dp/B00BADBAD0"
        dp_url = "https://www.amazon.com/dp/B00DPDPDP0"
        session.routes[search_url(q="B00DPDPDP0")] = json_response({"docs": [{"title": "Dp", "author_name": ["X"]}]})

        result = resolver.resolve_batch([PRODUCT_URL, bad_url, dp_url])

        assert [r.product_id for r in result.accepted] == ["1501135910"]
        assert {i.product_url: i.resolved for i in result.issues} == {bad_url: False, dp_url: True}
        assert result.resolved_count == 2
        assert "openlibrary.org" in result.failed_domains

    def test_batch_pauses_between_items_and_groups(self, sleeps):
        catalog_api = Mock()
        catalog_api.lookup.return_value = BookMetadata(title="Shoe Dog", author="Phil Knight")
        covers = Mock()
        covers.resolve.return_value = PLACEHOLDER_COVER
        resolver = MetadataResolver(catalog_api, covers, Mock(), Mock(), sleep=sleeps.append)
        urls = [f"https://www.amazon.com/dp/B00TEST{i:03d}" for i in range(12)]

        result = resolver.resolve_batch(urls)

        assert len(result.accepted) == 12
        assert sleeps.count(1.0) == 12
        assert sleeps.count(2.0) == 1
        assert sleeps.index(2.0) == 10
