"""
Extractor base classes.

An extractor claims URLs with ``can_handle(url)`` (a pure URL test) and turns
a page into canonical records with ``extract(html, url)``, a generator that may
yield nothing. Each field is looked up in JSON-LD structured data first and in
markup selectors second; the first source that yields a value wins for that
field, so one record may mix both.

Subclasses only declare ``can_handle`` plus their selector lists. See
``retail_crawler.extractors.bm`` for an example.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, Tag
from django.utils import timezone

from retail_crawler.extractors.categories import DEFAULT_CATEGORY_PATTERNS, infer_category
from retail_crawler.extractors.parsing import (
    external_id_from_url,
    parse_int,
    parse_price_to_pence,
    parse_quantity,
    parse_rating,
    parse_review_date,
    parse_weight,
    pounds_to_pence,
    review_external_id,
)
from retail_crawler.extractors.results import (
    STRATEGY_MARKUP,
    STRATEGY_STRUCTURED_DATA,
    ListingReference,
    ProductRecord,
    ReviewRecord,
)
from retail_crawler.extractors.selectors import (
    element_text,
    make_soup,
    select_all,
    select_attr,
    select_first,
    select_text,
)
from retail_crawler.extractors.structured_data import (
    find_typed,
    first_value,
    has_type,
    iter_json_ld,
    text_value,
)

logger = logging.getLogger(__name__)


class BaseExtractor(ABC):
    """Common contract and helpers for all extractors."""

    kind: str = ""
    retailer_slug: str = ""

    # Bot-check interstitials; titles are matched from the start so product
    # names such as "Robot Dog Toy" never count
    BLOCKED_TITLE_PATTERNS = (
        re.compile(r"^\s*(robot check|access denied|are you a (?:human|robot)|attention required|security check|captcha)\b", re.IGNORECASE),
        re.compile(r"you have been blocked", re.IGNORECASE),
    )
    BLOCKED_TEXT_PATTERNS = (
        re.compile(r"(complete|solve) the captcha", re.IGNORECASE),
        re.compile(r"enter the characters you see", re.IGNORECASE),
        re.compile(r"verify (?:that )?you are (?:a )?human", re.IGNORECASE),
        re.compile(r"are you a robot\?", re.IGNORECASE),
    )

    def __init__(self, retailer_slug: Optional[str] = None):
        if retailer_slug:
            self.retailer_slug = retailer_slug

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def can_handle(self, url: str) -> bool:
        """Whether this extractor understands pages at ``url``."""

    @abstractmethod
    def extract_records(self, soup: BeautifulSoup, url: str) -> Iterator[Any]:
        """Yield records from a parsed page."""

    def extract(self, html: str, url: str) -> Iterator[Any]:
        """
        Yield canonical records extracted from ``html``.

        Blocked pages yield nothing. Unexpected markup is logged and ends the
        document's extraction without raising.
        """
        soup = make_soup(html)

        if self.is_blocked_page(soup):
            logger.warning(f"{self.name}: Blocked/CAPTCHA page detected at {url}")
            return

        count = 0
        try:
            for record in self.extract_records(soup, url):
                count += 1
                yield record
        except Exception as e:
            logger.warning(f"{self.name}: Extraction aborted for {url} after {count} record(s): {e}")
            return

        logger.debug(f"{self.name}: Extracted {count} {self.kind} record(s) from {url}")

    def is_blocked_page(self, soup: BeautifulSoup) -> bool:
        """
        Detect CAPTCHA and access-denied interstitials.

        A page carrying Product structured data is real content, whatever its
        footer says about reCAPTCHA.
        """
        if find_typed(soup, "Product") is not None:
            return False

        title = element_text(soup.find("title"))
        if title and any(pattern.search(title) for pattern in self.BLOCKED_TITLE_PATTERNS):
            return True

        visible = " ".join(
            text for text in soup.find_all(string=True)
            if text.parent is not None and text.parent.name not in ("script", "style", "noscript", "title")
        )
        return any(pattern.search(visible) for pattern in self.BLOCKED_TEXT_PATTERNS)

    def build_metadata(self, url: str, field_sources: Optional[Dict[str, str]] = None, **extra) -> dict:
        field_sources = field_sources or {}
        strategy = (
            STRATEGY_STRUCTURED_DATA
            if STRATEGY_STRUCTURED_DATA in field_sources.values()
            else STRATEGY_MARKUP
        )
        metadata = {
            "retailer": self.retailer_slug,
            "source_url": url,
            "extracted_at": timezone.now().isoformat(),
            "extraction_strategy": strategy,
            "extractor": self.name,
        }
        if field_sources:
            metadata["field_sources"] = dict(field_sources)
        metadata.update(extra)
        return metadata


class ListingExtractor(BaseExtractor):
    """
    Finds product page URLs on listing and category pages.

    URLs are made absolute, stripped of fragments and tracking parameters,
    and de-duplicated within the page.
    """

    kind = "listing"

    link_selectors: Sequence[str] = ("a[href]",)
    category_patterns = DEFAULT_CATEGORY_PATTERNS

    TRACKING_PARAM_PREFIXES = ("utm_",)
    TRACKING_PARAMS = ("gclid", "fbclid", "mc_cid", "mc_eid", "ref", "srsltid")
    SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")

    @abstractmethod
    def is_product_url(self, url: str) -> bool:
        """Whether an absolute URL points at a product page."""

    def normalize_url(self, href: str, page_url: str) -> Optional[str]:
        href = (href or "").strip()
        if not href or href.startswith("#") or href.lower().startswith(self.SKIP_SCHEMES):
            return None

        parsed = urlparse(urljoin(page_url, href))
        if parsed.scheme not in ("http", "https"):
            return None

        query = [
            (key, value)
            for key, value in parse_qsl(parsed.query, keep_blank_values=True)
            if not key.lower().startswith(self.TRACKING_PARAM_PREFIXES)
            and key.lower() not in self.TRACKING_PARAMS
        ]
        return urlunparse(parsed._replace(query=urlencode(query), fragment=""))

    def category_for(self, product_url: str, page_url: str) -> Optional[str]:
        return (
            infer_category(product_url, self.category_patterns)
            or infer_category(page_url, self.category_patterns)
        )

    def extract_records(self, soup: BeautifulSoup, url: str) -> Iterator[ListingReference]:
        seen = set()

        for href, link_text, strategy in self._candidate_links(soup):
            product_url = self.normalize_url(href, url)
            if not product_url or product_url in seen or not self.is_product_url(product_url):
                continue
            seen.add(product_url)

            yield ListingReference(
                url=product_url,
                retailer=self.retailer_slug,
                category=self.category_for(product_url, url),
                metadata=self.build_metadata(
                    url,
                    {"url": strategy},
                    discovered_from=url,
                    discovered_at=timezone.now().isoformat(),
                    link_text=link_text,
                ),
            )

        logger.info(f"{self.name}: Extracted {len(seen)} product listing URLs from {url}")

    def _candidate_links(self, soup: BeautifulSoup):
        # Structured data first: ItemList entries
        for item in iter_json_ld(soup):
            if not has_type(item, "ItemList"):
                continue
            elements = item.get("itemListElement") or []
            if isinstance(elements, dict):
                elements = [elements]
            for element in elements:
                if not isinstance(element, dict):
                    continue
                target = element.get("item") if isinstance(element.get("item"), dict) else element
                href = target.get("url") or (element.get("item") if isinstance(element.get("item"), str) else None)
                if href:
                    yield str(href), text_value(target.get("name")), STRATEGY_STRUCTURED_DATA

        for selector in self.link_selectors:
            for element in select_all(soup, selector):
                href = element.get("href")
                if href:
                    yield href, element_text(element), STRATEGY_MARKUP


class ProductDetailsExtractor(BaseExtractor):
    """Extracts one ProductRecord from a product page."""

    kind = "product"

    title_selectors: Sequence[str] = ("h1",)
    price_selectors: Sequence[str] = (".price",)
    price_attributes: Sequence[str] = ("data-price", "content")
    original_price_selectors: Sequence[str] = (".was-price", "del", "s")
    original_price_attributes: Sequence[str] = ("data-original-price",)
    description_selectors: Sequence[str] = (".product-description",)
    brand_selectors: Sequence[str] = (".product-brand", "[data-brand]")
    image_selectors: Sequence[str] = (".product-image img",)
    image_attributes: Sequence[str] = ("src", "data-src", "data-lazy-src", "data-original")
    weight_selectors: Sequence[str] = ()
    id_selectors: Sequence[str] = ("[data-product-id]", "[data-sku]")
    id_attributes: Sequence[str] = ("data-product-id", "data-sku", "data-item-id", "value")
    out_of_stock_selectors: Sequence[str] = (".out-of-stock", ".sold-out")
    in_stock_selectors: Sequence[str] = (".in-stock",)
    add_to_cart_selectors: Sequence[str] = ()
    known_brands: Sequence[str] = ()

    IMAGE_PLACEHOLDER_MARKERS = ("placeholder", "loading", "spinner", "blank.gif")
    BRAND_SKIP_WORDS = {
        "home", "products", "pet", "pets", "dog", "cat", "food", "treats",
        "accessories", "shop", "all", "new", "sale", "the", "and", "or",
    }
    OUT_OF_STOCK_STATUSES = {"out", "outofstock", "out-of-stock", "unavailable", "soldout", "sold-out"}
    IN_STOCK_STATUSES = {"in", "instock", "in-stock", "available"}

    def extract_records(self, soup: BeautifulSoup, url: str) -> Iterator[ProductRecord]:
        product = find_typed(soup, "Product") or {}
        offer = self._offer(product)
        sources: Dict[str, str] = {}

        def pick(field, structured, markup):
            if structured is not None and structured != []:
                sources[field] = STRATEGY_STRUCTURED_DATA
                return structured
            value = markup()
            if value is not None and value != []:
                sources[field] = STRATEGY_MARKUP
            return value

        title = pick("title", text_value(product.get("name")), lambda: select_text(soup, self.title_selectors))
        price = pick(
            "price",
            pounds_to_pence(first_value(offer.get("price") or offer.get("lowPrice"))),
            lambda: self._markup_price(soup, self.price_selectors, self.price_attributes),
        )

        if title is None and price is None:
            logger.warning(f"{self.name}: No title or price found at {url}, skipping")
            return

        if title is None:
            logger.warning(f"{self.name}: Could not extract title from {url}")
        if price is None:
            logger.warning(f"{self.name}: Could not extract price from {url}")

        description = pick(
            "description",
            text_value(product.get("description")),
            lambda: select_text(soup, self.description_selectors),
        )
        brand = pick("brand", text_value(product.get("brand")), lambda: self._markup_brand(soup, title))
        original_price = pick(
            "original_price",
            None,
            lambda: self._markup_price(soup, self.original_price_selectors, self.original_price_attributes),
        )
        in_stock = pick(
            "in_stock",
            self._availability(offer),
            lambda: self._markup_stock(soup),
        )
        images = pick("images", self._structured_images(product, url), lambda: self._markup_images(soup, url))
        external_id = pick(
            "external_id",
            text_value(product.get("sku") or product.get("productID")),
            lambda: select_attr(soup, self.id_selectors, self.id_attributes) or self.external_id_for_url(url),
        )
        weight = pick(
            "weight",
            None,
            lambda: parse_weight(select_text(soup, self.weight_selectors)) or parse_weight(title),
        )
        barcode = pick("barcode", self._barcode(product), lambda: None)

        rating = product.get("aggregateRating") if isinstance(product.get("aggregateRating"), dict) else {}
        rating_value = pick("rating", parse_rating(rating.get("ratingValue")), lambda: None)

        metadata = self.build_metadata(url, sources)
        if price is None:
            metadata["price_missing"] = True

        yield ProductRecord(
            title=title or "Unknown Product",
            price_pence=price if price is not None else 0,
            description=description,
            brand=brand,
            original_price_pence=original_price,
            in_stock=in_stock,
            weight_grams=weight,
            quantity=parse_quantity(title),
            images=images or [],
            external_id=external_id,
            barcode=barcode,
            category=infer_category(url),
            rating_value=rating_value,
            rating_count=parse_int(rating.get("reviewCount") or rating.get("ratingCount")) if rating else None,
            metadata=metadata,
        )

    def external_id_for_url(self, url: str) -> Optional[str]:
        return external_id_from_url(url)

    def _offer(self, product: dict) -> dict:
        offer = first_value(product.get("offers"))
        return offer if isinstance(offer, dict) else {}

    def _markup_price(self, soup, selectors, attributes) -> Optional[int]:
        for selector in selectors:
            elements = select_all(soup, selector)
            if not elements:
                continue
            element = elements[0]
            for attribute in attributes:
                price = parse_price_to_pence(element.get(attribute))
                if price is not None:
                    return price
            price = parse_price_to_pence(element_text(element))
            if price is not None:
                return price
        return None

    def _markup_brand(self, soup, title: Optional[str]) -> Optional[str]:
        element = select_first(soup, self.brand_selectors)
        if element is not None:
            brand = element_text(element) or (element.get("data-brand") or "").strip()
            if brand:
                return brand
        if not title:
            return None
        for brand in self.known_brands:
            if brand.lower() in title.lower():
                return brand
        words = title.split()
        if len(words) > 1 and self._looks_like_brand(words[0]):
            return words[0]
        return None

    def _looks_like_brand(self, text: str) -> bool:
        return len(text) > 2 and text.lower() not in self.BRAND_SKIP_WORDS and text[0].isupper()

    def _availability(self, offer: dict) -> Optional[bool]:
        availability = text_value(offer.get("availability"))
        if not availability:
            return None
        availability = availability.lower().rsplit("/", 1)[-1]
        if availability in ("outofstock", "soldout", "discontinued"):
            return False
        if availability in ("instock", "limitedavailability", "preorder", "instoreonly", "onlineonly"):
            return True
        return None

    def _markup_stock(self, soup) -> bool:
        if select_first(soup, self.out_of_stock_selectors) is not None:
            return False
        if select_first(soup, self.in_stock_selectors) is not None:
            return True

        element = select_first(soup, ("[data-stock-status]",))
        if element is not None:
            status = (element.get("data-stock-status") or "").strip().lower()
            if status in self.OUT_OF_STOCK_STATUSES:
                return False
            if status in self.IN_STOCK_STATUSES:
                return True

        button = select_first(soup, self.add_to_cart_selectors) if self.add_to_cart_selectors else None
        if button is not None and button.has_attr("disabled"):
            return False

        # No explicit signal
        return True

    def _structured_images(self, product: dict, url: str) -> List[str]:
        images = product.get("image")
        if images is None:
            return []
        if not isinstance(images, list):
            images = [images]
        candidates = []
        for image in images:
            if isinstance(image, dict):
                image = image.get("url") or image.get("contentUrl")
            if image:
                candidates.append(str(image))
        return self._clean_images(candidates, url)

    def _markup_images(self, soup, url: str) -> List[str]:
        candidates = []
        for selector in self.image_selectors:
            for element in select_all(soup, selector):
                for attribute in self.image_attributes:
                    src = element.get(attribute)
                    if src:
                        candidates.append(src)
                        break
        return self._clean_images(candidates, url)

    def _clean_images(self, candidates: List[str], url: str) -> List[str]:
        images = []
        for src in candidates:
            src = src.strip()
            if not src or src.startswith("data:"):
                continue
            if any(marker in src.lower() for marker in self.IMAGE_PLACEHOLDER_MARKERS):
                continue
            src = urljoin(url, src)
            if src not in images:
                images.append(src)
        return images

    def _barcode(self, product: dict) -> Optional[str]:
        for key in ("gtin13", "gtin", "gtin12", "gtin14", "gtin8", "ean"):
            value = text_value(product.get(key))
            if value:
                return value
        return None


class ReviewExtractor(BaseExtractor):
    """
    Extracts ReviewRecords from a product page.

    Reviews in structured data are used when present; markup reviews are
    only read when structured data has none.
    """

    kind = "review"

    review_selectors: Sequence[str] = (".review",)
    body_selectors: Sequence[str] = (".review-body", "[itemprop=\"reviewBody\"]", "p")
    author_selectors: Sequence[str] = (".review-author", "[itemprop=\"author\"]")
    title_selectors: Sequence[str] = (".review-title", "h3", "h4")
    rating_selectors: Sequence[str] = ("[data-rating]", ".rating")
    date_selectors: Sequence[str] = ("[itemprop=\"datePublished\"]", ".review-date", "time")
    verified_selectors: Sequence[str] = (".verified-purchase",)
    helpful_selectors: Sequence[str] = (".helpful-count", "[data-helpful-count]")
    filled_star_selector: str = ".star-filled, .star-full"
    width_rating_selector: str = ".rating-stars, .star-rating, .bv-rating-stars-on"

    RATING_ATTRIBUTES = ("data-rating", "data-score", "data-stars")

    def extract_records(self, soup: BeautifulSoup, url: str) -> Iterator[ReviewRecord]:
        found = 0
        for review in self._structured_reviews(soup, url):
            found += 1
            yield review

        if not found:
            yield from self._markup_reviews(soup, url)

    def _structured_reviews(self, soup, url: str) -> Iterator[ReviewRecord]:
        reviews = []
        for item in iter_json_ld(soup):
            if has_type(item, "Product") and item.get("review"):
                reviews = item["review"]
                break
        if isinstance(reviews, dict):
            reviews = [reviews]

        for index, data in enumerate(reviews):
            if not isinstance(data, dict):
                continue
            rating_data = data.get("reviewRating")
            rating = parse_rating(
                rating_data.get("ratingValue") if isinstance(rating_data, dict) else data.get("ratingValue")
            )
            body = text_value(data.get("reviewBody") or data.get("description"))
            if not rating or not body:
                continue

            author = text_value(data.get("author"))
            external_id = text_value(data.get("@id") or data.get("identifier"))

            yield ReviewRecord(
                external_id=external_id or review_external_id(self.retailer_slug, url, author, body, index),
                rating=rating,
                body=body,
                author=author,
                title=text_value(data.get("name") or data.get("headline")),
                review_date=parse_review_date(data.get("datePublished")),
                verified_purchase=bool(data.get("verifiedPurchase", False)),
                helpful_count=parse_int(data.get("upvoteCount")) or 0,
                metadata=self.build_metadata(url, {"review": STRATEGY_STRUCTURED_DATA}),
            )

    def _markup_reviews(self, soup, url: str) -> Iterator[ReviewRecord]:
        for selector in self.review_selectors:
            nodes = select_all(soup, selector)
            if not nodes:
                continue

            index = 0
            for node in nodes:
                review = self._parse_review_node(node, url, index)
                if review is not None:
                    index += 1
                    yield review
            # First selector with matches wins
            return

    def _parse_review_node(self, node: Tag, url: str, index: int) -> Optional[ReviewRecord]:
        rating = self.rating_from_node(node)
        body = select_text(node, self.body_selectors)
        if not rating or not body:
            return None

        author = select_text(node, self.author_selectors)
        external_id = (node.get("data-review-id") or node.get("id") or "").strip()

        return ReviewRecord(
            external_id=external_id or review_external_id(self.retailer_slug, url, author, body, index),
            rating=rating,
            body=body,
            author=author,
            title=select_text(node, self.title_selectors),
            review_date=self._review_date(node),
            verified_purchase=self._is_verified(node),
            helpful_count=self._helpful_count(node),
            metadata=self.build_metadata(url, {"review": STRATEGY_MARKUP}),
        )

    def rating_from_node(self, node: Tag) -> Optional[float]:
        """
        Read a review's star rating, trying in order: data attributes on the
        review, rating elements (data attributes, then aria-label),
        itemprop=ratingValue, filled star count, and width-percentage styles.
        """
        for attribute in self.RATING_ATTRIBUTES:
            rating = parse_rating(node.get(attribute))
            if rating is not None:
                return rating

        for selector in self.rating_selectors:
            elements = select_all(node, selector)
            if not elements:
                continue
            element = elements[0]
            for attribute in self.RATING_ATTRIBUTES:
                rating = parse_rating(element.get(attribute))
                if rating is not None:
                    return rating
            label = element.get("aria-label")
            if label:
                rating = parse_rating(label)
                if rating is not None:
                    return rating

        element = select_first(node, ("[itemprop=\"ratingValue\"]",))
        if element is not None:
            rating = parse_rating(element.get("content") or element_text(element))
            if rating is not None:
                return rating

        stars = select_all(node, self.filled_star_selector)
        if stars:
            return float(min(len(stars), 5))

        element = select_first(node, (self.width_rating_selector,))
        if element is not None:
            style = element.get("style") or ""
            for declaration in style.split(";"):
                name, _, value = declaration.partition(":")
                if name.strip().lower() == "width" and value.strip().endswith("%"):
                    try:
                        return round(float(value.strip()[:-1]) / 20, 1)
                    except ValueError:
                        break

        return None

    def _review_date(self, node: Tag):
        element = select_first(node, self.date_selectors)
        if element is None:
            return None
        return parse_review_date(
            element.get("content") or element.get("datetime") or element_text(element)
        )

    def _is_verified(self, node: Tag) -> bool:
        if select_first(node, self.verified_selectors) is not None:
            return True
        text = (element_text(node) or "").lower()
        return "verified purchase" in text or "verified buyer" in text

    def _helpful_count(self, node: Tag) -> int:
        element = select_first(node, self.helpful_selectors)
        if element is None:
            return 0
        return parse_int(element.get("data-helpful-count") or element_text(element)) or 0
