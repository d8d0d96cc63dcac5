"""Tests for place/website lookup helpers and formatting."""

import httpx
import pytest

from portal_assistant.core.errors import UpstreamError
from portal_assistant.core.place_search import (
    PlaceDetails,
    PlaceSearch,
    find_social_links,
    looks_like_url,
    normalize_url,
)

SITE_HTML = """
<a href="mailto:hello@dyad.sh">Email</a>
<a href="https://www.instagram.com/dyad">IG</a>
<a href="https://instagram.com/other">IG2</a>
<a href='https://twitter.com/dyad'>X</a>
"""


def test_looks_like_url():
    assert looks_like_url("dyad.sh")
    assert looks_like_url("https://example.com/about")
    assert looks_like_url("www.example.com")
    assert not looks_like_url("Starbucks Central Park Jakarta")
    assert not looks_like_url("")


def test_normalize_url():
    assert normalize_url("dyad.sh") == "https://dyad.sh"
    assert normalize_url("http://x.com") == "http://x.com"
    assert normalize_url(None) is None


def test_find_social_links_takes_first_per_platform():
    links = find_social_links(SITE_HTML)
    assert links["email"] == "hello@dyad.sh"
    assert links["instagram"] == "https://www.instagram.com/dyad"
    assert links["twitter"] == "https://twitter.com/dyad"
    assert links["facebook"] is None


def test_markdown_includes_present_fields_only():
    details = PlaceDetails(
        name="Kopi Kenangan",
        rating=4.5,
        review_count=210,
        categories=["cafe", "point_of_interest"],
        address="Jl. Sudirman 1",
        website="https://kopikenangan.com",
        domain="kopikenangan.com",
        opening_hours=["Monday: 7AM-10PM"],
        instagram="https://instagram.com/kopikenangan",
        maps_url="https://maps.google.com/?cid=1",
    )

    markdown = details.to_markdown()

    assert markdown.startswith("### Kopi Kenangan\n")
    assert "**Rating:** 4.5 ⭐ (210 reviews)" in markdown
    assert "**Categories:** cafe, point of interest" in markdown
    assert "**Website:** [kopikenangan.com](https://kopikenangan.com)" in markdown
    assert "- Monday: 7AM-10PM" in markdown
    assert "**Socials:** [Instagram](https://instagram.com/kopikenangan)" in markdown
    assert "[View on Google Maps](https://maps.google.com/?cid=1)" in markdown
    assert "Phone" not in markdown
    assert "Featured Image" not in markdown


@pytest.mark.asyncio
async def test_place_query_without_api_key_is_upstream_error():
    with pytest.raises(UpstreamError) as exc:
        await PlaceSearch(api_key="").lookup("Starbucks Central Park")
    assert exc.value.message == "Google Maps API key is not configured."


@pytest.mark.asyncio
async def test_website_query_scrapes_links(monkeypatch):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "dyad.sh"
        return httpx.Response(200, text=SITE_HTML)

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        "portal_assistant.core.place_search.httpx.AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    details = await PlaceSearch(api_key="").lookup("dyad.sh")

    assert details.name == "dyad.sh"
    assert details.website == "https://dyad.sh"
    assert details.email == "hello@dyad.sh"
    assert details.twitter == "https://twitter.com/dyad"
