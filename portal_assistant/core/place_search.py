"""Place and website lookup for SEARCH_EXTERNAL.

A free-text query goes through Google Places text search + details. A query
that looks like a URL skips Places and uses the site directly. In both cases
the website (if any) is scraped for an email address and social links.
"""

import re
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field

from portal_assistant.core.config import get_settings
from portal_assistant.core.errors import UpstreamError
from portal_assistant.core.logging import get_logger

logger = get_logger(__name__)

PLACES_TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
PLACES_PHOTO_URL = "https://maps.googleapis.com/maps/api/place/photo"
DETAILS_FIELDS = (
    "name,formatted_address,address_components,type,formatted_phone_number,rating,"
    "user_ratings_total,url,geometry,website,opening_hours,price_level,photo,place_id"
)

_EMAIL_RE = re.compile(r"mailto:([a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,6})", re.IGNORECASE)
_SOCIAL_RE = re.compile(
    r"""href=["'](https?://(?:www\.)?(instagram|facebook|youtube|twitter)\.com/[^"']+)["']""",
    re.IGNORECASE,
)


class PlaceDetails(BaseModel):
    """Normalized lookup result. Missing fields stay None."""

    name: str
    address: str | None = None
    street: str | None = None
    categories: list[str] = Field(default_factory=list)
    phone: str | None = None
    review_count: int | None = None
    rating: float | None = None
    maps_url: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    website: str | None = None
    domain: str | None = None
    opening_hours: list[str] = Field(default_factory=list)
    price_level: int | None = None
    featured_image: str | None = None
    place_id: str | None = None
    email: str | None = None
    instagram: str | None = None
    facebook: str | None = None
    youtube: str | None = None
    twitter: str | None = None

    def to_markdown(self) -> str:
        lines = [f"### {self.name}"]
        if self.rating is not None:
            reviews = f" ({self.review_count} reviews)" if self.review_count is not None else ""
            lines.append(f"**Rating:** {self.rating} ⭐{reviews}")
        if self.categories:
            lines.append(f"**Categories:** {', '.join(self.categories).replace('_', ' ')}")
        if self.address:
            lines.append("")
            lines.append(f"**Address:** {self.address}")
        if self.phone:
            lines.append(f"**Phone:** {self.phone}")
        if self.website:
            lines.append(f"**Website:** [{self.domain or self.website}]({self.website})")
        if self.email:
            lines.append(f"**Email:** {self.email}")
        if self.opening_hours:
            lines.append("")
            lines.append("**Hours:**")
            lines.extend(f"- {h}" for h in self.opening_hours)

        socials = [
            f"[{label}]({url})"
            for label, url in (
                ("Instagram", self.instagram),
                ("Facebook", self.facebook),
                ("Twitter", self.twitter),
                ("YouTube", self.youtube),
            )
            if url
        ]
        if socials:
            lines.append("")
            lines.append(f"**Socials:** {' | '.join(socials)}")
        if self.maps_url:
            lines.append("")
            lines.append(f"[View on Google Maps]({self.maps_url})")
        if self.featured_image:
            lines.append("")
            lines.append(f"![Featured Image]({self.featured_image})")
        return "\n".join(lines) + "\n"


def looks_like_url(query: str) -> bool:
    query = (query or "").strip()
    if not query:
        return False
    if query.startswith(("http://", "https://", "www.")):
        return True
    if " " in query:
        return False
    host = urlparse(f"https://{query}").hostname or ""
    return "." in host and not host.endswith(".")


def normalize_url(url: str | None) -> str | None:
    if not url:
        return None
    url = url.strip()
    return url if url.startswith("http") else f"https://{url}"


def find_social_links(html: str) -> dict[str, str | None]:
    """First mailto address plus the first link per social platform."""
    links: dict[str, str | None] = {
        "email": None,
        "instagram": None,
        "facebook": None,
        "youtube": None,
        "twitter": None,
    }
    email = _EMAIL_RE.search(html)
    if email:
        links["email"] = email.group(1)
    for match in _SOCIAL_RE.finditer(html):
        platform = match.group(2).lower()
        if not links[platform]:
            links[platform] = match.group(1)
    return links


class PlaceSearch:
    """Google Places + website scrape."""

    def __init__(self, api_key: str | None = None, timeout: float = 15.0):
        self.api_key = api_key if api_key is not None else get_settings().GOOGLE_MAPS_API_KEY
        self.timeout = timeout

    async def lookup(self, query: str) -> PlaceDetails:
        """
        Look up a place name or website.

        Raises:
            UpstreamError: With a displayable reason when nothing can be returned
        """
        query = (query or "").strip()
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            if looks_like_url(query):
                website = normalize_url(query)
                domain = urlparse(website).hostname
                details = PlaceDetails(name=domain or website, website=website, domain=domain)
            else:
                details = await self._search_places(client, query)

            if details.website:
                await self._scrape_website(client, details)

        logger.info(f"Place lookup for '{query[:50]}' resolved to {details.name!r}")
        return details

    async def _search_places(self, client: httpx.AsyncClient, query: str) -> PlaceDetails:
        if not self.api_key:
            raise UpstreamError("Google Maps API key is not configured.")

        try:
            search = await client.get(PLACES_TEXT_SEARCH_URL, params={"query": query, "key": self.api_key})
            search.raise_for_status()
            search_data = search.json()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Google Maps search failed: {e}") from e

        status = search_data.get("status")
        if status == "ZERO_RESULTS" or (status == "OK" and not search_data.get("results")):
            raise UpstreamError(f'Could not find any results for "{query}" on Google Maps.')
        if status != "OK":
            reason = search_data.get("error_message") or (
                "Please check your API key and ensure the Places API is enabled."
            )
            raise UpstreamError(f"Google Maps API Error: {status}. {reason}")

        place_id = search_data["results"][0]["place_id"]
        try:
            resp = await client.get(
                PLACES_DETAILS_URL,
                params={"place_id": place_id, "fields": DETAILS_FIELDS, "key": self.api_key},
            )
            resp.raise_for_status()
            details_data = resp.json()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Google Maps details lookup failed: {e}") from e

        if details_data.get("status") != "OK":
            raise UpstreamError(
                f"Google Maps Details API Error: {details_data.get('status')}. "
                f"{details_data.get('error_message') or ''}".strip()
            )
        return self._details_from_place(details_data.get("result") or {})

    def _details_from_place(self, place: dict[str, Any]) -> PlaceDetails:
        street = next(
            (
                c.get("long_name")
                for c in place.get("address_components") or []
                if "route" in (c.get("types") or [])
            ),
            None,
        )
        featured_image = None
        photos = place.get("photos") or []
        if photos:
            featured_image = (
                f"{PLACES_PHOTO_URL}?maxwidth=400&photoreference={photos[0].get('photo_reference')}"
                f"&key={self.api_key}"
            )
        location = (place.get("geometry") or {}).get("location") or {}
        website = normalize_url(place.get("website"))

        return PlaceDetails(
            name=place.get("name") or "Unknown place",
            address=place.get("formatted_address"),
            street=street,
            categories=place.get("types") or [],
            phone=place.get("formatted_phone_number"),
            review_count=place.get("user_ratings_total"),
            rating=place.get("rating"),
            maps_url=place.get("url"),
            latitude=location.get("lat"),
            longitude=location.get("lng"),
            website=website,
            domain=urlparse(website).hostname if website else None,
            opening_hours=(place.get("opening_hours") or {}).get("weekday_text") or [],
            price_level=place.get("price_level"),
            featured_image=featured_image,
            place_id=place.get("place_id"),
        )

    async def _scrape_website(self, client: httpx.AsyncClient, details: PlaceDetails) -> None:
        """Fill email/social fields from the website. Failures only log."""
        try:
            resp = await client.get(details.website)
            if resp.status_code != 200:
                return
            links = find_social_links(resp.text)
        except httpx.HTTPError as e:
            logger.warning(f"Could not scrape website {details.website}: {e}")
            return

        details.email = links["email"]
        details.instagram = links["instagram"]
        details.facebook = links["facebook"]
        details.youtube = links["youtube"]
        details.twitter = links["twitter"]
