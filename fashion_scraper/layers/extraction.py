"""
Extraction Engine for the fashion product scraper.
Turns raw page bytes into typed field candidates, each tagged with the
confidence tier of the heuristic that found it.

Rules per field are explicit ordered lists of pure functions over a parsed
PageDocument. Within a tier the first rule that finds a value wins; each
tier contributes at most one candidate (images: every URL found).
"""
import html
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup, Tag

from fashion_scraper.layers.classification import (
    availability_from_text,
    classify_garment,
    normalize_schema_availability,
)
from fashion_scraper.layers.pricing import (
    build_price,
    currency_from_locale,
    currency_from_symbol,
    normalize_currency,
    parse_price_text,
)
from fashion_scraper.models.evidence import Confidence, FieldCandidate, FieldName
from fashion_scraper.models.product import Availability, GarmentType, Price
from fashion_scraper.utils.logger import LayerLogger
from fashion_scraper.utils.urls import absolutize, image_key

MAX_TEXT_LENGTH = 300
MAX_IMG_TAGS = 50
MAX_IMG_TAG_IMAGES = 15

PRODUCT_TYPES = ("Product", "ProductGroup", "IndividualProduct", "ProductModel")

TITLE_SEPARATORS = re.compile(r"\s+[|\-–—·:]\s+")

PRICE_SIGNAL_RE = re.compile(
    r"(?:US\$|A\$|C\$|[$£€¥₹])\s*\d[\d,.]*|\d+[.,]\d+\s*(?:USD|EUR|GBP|INR|CAD|AUD|JPY)"
)

DOM_PRICE_SELECTORS = [
    "[data-price]",
    "[data-product-price]",
    ".product-price",
    ".price",
    ".current-price",
    ".sale-price",
    "[class*='price']",
    "[id*='price']",
]

STRIKE_CLASS_RE = re.compile(r"(?:^|[\s_-])(?:was|compare|old|original|strike|before|crossed)(?:$|[\s_-])", re.I)

EXCLUDED_IMAGE_PATTERNS = [
    "logo", "icon", "favicon", "sprite", "loading", "placeholder", "spinner",
    "pixel", "tracking", "beacon", "spacer", "blank",
    "social", "facebook", "twitter", "instagram", "youtube", "pinterest", "tiktok",
    "payment", "visa", "mastercard", "paypal", "stripe", "klarna", "afterpay",
    "shipping", "delivery", "banner", "advertisement", "badge", "flag",
]

IMAGE_TOKEN_SPLIT_RE = re.compile(r"[/\-_.]+")
IMAGE_EXTENSION_RE = re.compile(r"\.(?:jpe?g|png|webp|avif)(?:$|\?)", re.I)
INLINE_STATE_INDICATORS = (
    "window.INITIAL_STATE",
    "window.__INITIAL_STATE__",
    "window.__INITIAL_DATA__",
    "window.__NEXT_DATA__",
    "window.__PRODUCT_DATA__",
    "__INITIAL_STATE__",
    '"props":{"pageProps"',
)
INLINE_IMAGE_ARRAY_RES = [
    re.compile(r'"images?"\s*:\s*\[([^\]]+)\]'),
    re.compile(r'"imageUrls?"\s*:\s*\[([^\]]+)\]'),
    re.compile(r'"img"\s*:\s*\[([^\]]+)\]'),
]
INLINE_IMAGE_URL_RE = re.compile(r"""(?:https?:)?//[^"'\s\\]+?\.(?:jpe?g|png|webp)(?:\?[^"'\s\\]*)?""", re.I)

BREADCRUMB_SELECTORS = [
    "nav[aria-label*='readcrumb']",
    "[itemtype*='BreadcrumbList']",
    "[class*='breadcrumb']",
    "[id*='breadcrumb']",
]

STOCK_SELECTORS = [
    "[data-availability]",
    "[data-stock-status]",
    ".availability",
    ".stock-status",
    "[class*='stock-status']",
    "[class*='availability']",
    ".in-stock",
    ".out-of-stock",
    ".low-stock",
]

CART_BUTTON_RE = re.compile(r"add[\s_-]*to[\s_-]*(?:cart|bag|basket)|addtocart|add-to-cart|buy\s+now", re.I)
SOLD_OUT_BUTTON_RE = re.compile(r"sold[\s-]?out|out\s+of\s+stock|notify\s+me|unavailable", re.I)
STOCK_PHRASE_RE = re.compile(r"only\s+\d+\s+left|low\s+(?:in\s+)?stock|few\s+(?:items\s+)?left", re.I)


def clean_text(value: Any) -> Optional[str]:
    """Collapse whitespace, unescape entities and bound length; None if empty."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    text = re.sub(r"\s+", " ", html.unescape(value)).strip()
    if not text or len(text) > MAX_TEXT_LENGTH:
        return None
    return text


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _strip_site_suffix(title: str) -> Tuple[str, Optional[str]]:
    """Split "Bomber Jacket | Brand" into ("Bomber Jacket", "Brand")."""
    parts = [p.strip() for p in TITLE_SEPARATORS.split(title) if p.strip()]
    if len(parts) < 2:
        return title, None
    return parts[0], parts[-1]


@dataclass
class PageDocument:
    """A page parsed once and shared by every extraction rule."""
    soup: BeautifulSoup
    base_url: Optional[str] = None
    jsonld: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    meta: Dict[str, List[str]] = field(default_factory=dict)
    locale: Optional[str] = None

    @classmethod
    def parse(cls, body: bytes, base_url: Optional[str] = None) -> "PageDocument":
        soup = BeautifulSoup(body, "lxml")
        doc = cls(soup=soup, base_url=base_url)
        doc.jsonld = parse_all_jsonld(soup)
        doc.meta = collect_meta(soup)
        html_tag = soup.find("html")
        lang = html_tag.get("lang") if isinstance(html_tag, Tag) else None
        doc.locale = doc.meta_first("og:locale") or (lang if isinstance(lang, str) else None)
        return doc

    def meta_first(self, *keys: str) -> Optional[str]:
        for key in keys:
            for value in self.meta.get(key, []):
                if value and value.strip():
                    return value.strip()
        return None

    def products(self) -> List[Dict[str, Any]]:
        nodes: List[Dict[str, Any]] = []
        for schema_type in PRODUCT_TYPES:
            for node in self.jsonld.get(schema_type, []):
                if not any(node is seen for seen in nodes):
                    nodes.append(node)
        return nodes

    def offers(self) -> List[Dict[str, Any]]:
        """Offer nodes from Product nodes (and their variants), then top-level Offers."""
        offers: List[Dict[str, Any]] = []
        for product in self.products():
            offers.extend(_flatten_offers(product.get("offers")))
            for variant in _as_list(product.get("hasVariant")):
                if isinstance(variant, dict):
                    offers.extend(_flatten_offers(variant.get("offers")))
        for schema_type in ("Offer", "AggregateOffer"):
            for node in self.jsonld.get(schema_type, []):
                if not any(node is seen for seen in offers):
                    offers.append(node)
        return offers

    def page_currency(self) -> Optional[str]:
        """Currency declared for the page as a whole, or implied by its locale."""
        explicit = self.meta_first("product:price:currency", "og:price:currency", "pricecurrency")
        if explicit:
            code = normalize_currency(explicit)
            if code:
                return code
        return currency_from_locale(self.locale)


def _flatten_offers(offers: Any) -> List[Dict[str, Any]]:
    flat = []
    for offer in _as_list(offers):
        if not isinstance(offer, dict):
            continue
        flat.append(offer)
        nested = offer.get("offers")
        if nested:
            flat.extend(_flatten_offers(nested))
    return flat


def _loads_lenient(text: str) -> Any:
    try:
        return json.loads(text, strict=False)
    except ValueError:
        # Trailing commas are the most common hand-written JSON-LD defect
        return json.loads(re.sub(r",(\s*[}\]])", r"\1", text), strict=False)


def flatten_jsonld(data: Any) -> List[Dict[str, Any]]:
    """
    Flatten JSON-LD structure into a list of schema nodes.

    Handles single objects, @graph containers and arrays.
    """
    nodes = []

    if isinstance(data, dict):
        if "@graph" in data:
            nodes.extend(flatten_jsonld(data["@graph"]))
        if "@type" in data:
            nodes.append(data)

    elif isinstance(data, list):
        for item in data:
            nodes.extend(flatten_jsonld(item))

    return nodes


def parse_all_jsonld(soup: BeautifulSoup) -> Dict[str, List[Dict[str, Any]]]:
    """Parse ALL JSON-LD scripts once and organize nodes by @type."""
    nodes_by_type: Dict[str, List[Dict[str, Any]]] = {}

    for script in soup.find_all("script", type="application/ld+json"):
        text = script.string
        if not text or not text.strip():
            continue
        try:
            data = _loads_lenient(text.strip())
        except ValueError:
            continue

        for node in flatten_jsonld(data):
            for schema_type in _as_list(node.get("@type")):
                if isinstance(schema_type, str):
                    nodes_by_type.setdefault(schema_type, []).append(node)

    return nodes_by_type


def collect_meta(soup: BeautifulSoup) -> Dict[str, List[str]]:
    """Meta tag contents keyed by lower-cased property / name / itemprop."""
    meta: Dict[str, List[str]] = {}
    for tag in soup.find_all("meta"):
        key = tag.get("property") or tag.get("name") or tag.get("itemprop")
        content = tag.get("content")
        if isinstance(key, str) and isinstance(content, str) and content.strip():
            meta.setdefault(key.strip().lower(), []).append(content)
    return meta


def _is_struck_through(elem: Tag) -> bool:
    """True for "was" prices: inside <s>/<del>/<strike> or a compare-at container."""
    node: Optional[Tag] = elem
    for _ in range(4):
        if node is None or not isinstance(node, Tag):
            return False
        if node.name in ("s", "del", "strike"):
            return True
        classes = " ".join(node.get("class", []) or [])
        if classes and STRIKE_CLASS_RE.search(classes):
            return True
        node = node.parent
    return False


def _in_script(node: Any) -> bool:
    parent = getattr(node, "parent", None)
    return isinstance(parent, Tag) and parent.name in ("script", "style", "noscript", "template")


def _current_price_text(elem: Tag) -> str:
    """Visible text of a price container without its struck-through "was" prices."""
    parts = [
        str(node) for node in elem.find_all(string=True)
        if not _in_script(node) and not _is_struck_through(node.parent)
    ]
    return re.sub(r"\s+", " ", " ".join(parts)).strip()


# =========================================================================
# product_name
# =========================================================================

def name_from_jsonld(doc: PageDocument) -> Optional[str]:
    for product in doc.products():
        name = clean_text(product.get("name"))
        if name:
            return name
    return None


def name_from_itemprop(doc: PageDocument) -> Optional[str]:
    for scope in doc.soup.select("[itemtype*='schema.org/Product']"):
        elem = scope.select_one("[itemprop='name']")
        if elem:
            name = clean_text(elem.get("content") or elem.get_text(" ", strip=True))
            if name:
                return name
    return None


def name_from_og_title(doc: PageDocument) -> Optional[str]:
    title = clean_text(doc.meta_first("og:title", "twitter:title"))
    if title:
        return _strip_site_suffix(title)[0]
    return None


def name_from_h1(doc: PageDocument) -> Optional[str]:
    h1 = doc.soup.find("h1")
    if h1:
        return clean_text(h1.get_text(" ", strip=True))
    return None


def name_from_title_tag(doc: PageDocument) -> Optional[str]:
    title = doc.soup.find("title")
    if title:
        text = clean_text(title.get_text(" ", strip=True))
        if text:
            return _strip_site_suffix(text)[0]
    return None


# =========================================================================
# brand
# =========================================================================

def _brand_value(brand: Any) -> Optional[str]:
    for item in _as_list(brand):
        if isinstance(item, dict):
            name = clean_text(item.get("name"))
        else:
            name = clean_text(item)
        if name:
            return name
    return None


def brand_from_jsonld(doc: PageDocument) -> Optional[str]:
    for product in doc.products():
        brand = _brand_value(product.get("brand")) or _brand_value(product.get("manufacturer"))
        if brand:
            return brand
    return None


def brand_from_itemprop(doc: PageDocument) -> Optional[str]:
    elem = doc.soup.select_one("[itemprop='brand']")
    if not elem:
        return None
    if elem.get("content"):
        return clean_text(elem["content"])
    nested = elem.select_one("[itemprop='name']")
    if nested:
        return clean_text(nested.get("content") or nested.get_text(" ", strip=True))
    return clean_text(elem.get_text(" ", strip=True))


def brand_from_meta(doc: PageDocument) -> Optional[str]:
    return clean_text(doc.meta_first("product:brand", "og:brand", "brand"))


def brand_from_dom(doc: PageDocument) -> Optional[str]:
    elem = doc.soup.select_one("[data-brand], [class*='product-brand'], [class*='brand-name']")
    if not elem:
        return None
    return clean_text(elem.get("data-brand") or elem.get_text(" ", strip=True))


def brand_from_site_name(doc: PageDocument) -> Optional[str]:
    return clean_text(doc.meta_first("og:site_name", "application-name"))


def brand_from_title_suffix(doc: PageDocument) -> Optional[str]:
    title = doc.soup.find("title")
    if not title:
        return None
    text = clean_text(title.get_text(" ", strip=True))
    if not text:
        return None
    return _strip_site_suffix(text)[1]


# =========================================================================
# price
# =========================================================================

def price_from_jsonld(doc: PageDocument) -> Optional[Price]:
    fallback = doc.page_currency()
    for offer in doc.offers():
        price_spec = offer.get("priceSpecification")
        price_spec = price_spec[0] if isinstance(price_spec, list) and price_spec else price_spec
        price_spec = price_spec if isinstance(price_spec, dict) else {}

        amount = offer.get("price")
        if amount in (None, ""):
            amount = offer.get("lowPrice")
        if amount in (None, ""):
            amount = price_spec.get("price")

        currency = (
            normalize_currency(offer.get("priceCurrency"))
            or normalize_currency(price_spec.get("priceCurrency"))
            or (currency_from_symbol(amount) if isinstance(amount, str) else None)
            or fallback
        )
        price = build_price(amount, currency)
        if price:
            return price
    return None




def price_from_itemprop(doc: PageDocument) -> Optional[Price]:
    elem = doc.soup.select_one("[itemprop='price']")
    if not elem:
        return None
    raw = elem.get("content") or elem.get_text(" ", strip=True)
    if not raw:
        return None

    currency_elem = doc.soup.select_one("[itemprop='priceCurrency']")
    currency = None
    if currency_elem:
        currency = normalize_currency(currency_elem.get("content") or currency_elem.get_text(strip=True))
    return parse_price_text(raw, currency or doc.page_currency())


def price_from_meta(doc: PageDocument) -> Optional[Price]:
    amount = doc.meta_first("product:price:amount", "og:price:amount", "product:sale_price:amount")
    if not amount:
        return None
    currency = normalize_currency(
        doc.meta_first("product:price:currency", "og:price:currency", "product:sale_price:currency")
    )
    return parse_price_text(amount, currency or doc.page_currency())


def price_from_dom(doc: PageDocument) -> Optional[Price]:
    fallback = doc.page_currency()
    for selector in DOM_PRICE_SELECTORS:
        for elem in doc.soup.select(selector)[:20]:
            if _is_struck_through(elem):
                continue
            raw = elem.get("data-price") or elem.get("data-product-price")
            text = _current_price_text(elem)
            if raw and not any(ch.isalpha() or ch in "$€£¥₹" for ch in raw):
                # bare numeric attribute: take the currency from the visible text
                price = parse_price_text(raw, currency_from_symbol(text) or fallback)
            else:
                price = parse_price_text(raw or text[:100], fallback)
            if price:
                return price
    return None


def price_from_text_scan(doc: PageDocument) -> Optional[Price]:
    fallback = doc.page_currency()
    for node in doc.soup.find_all(string=PRICE_SIGNAL_RE, limit=200):
        if _in_script(node) or _is_struck_through(node.parent):
            continue
        text = re.sub(r"\s+", " ", str(node)).strip()
        match = PRICE_SIGNAL_RE.search(text)
        if not match:
            continue
        price = parse_price_text(match.group(), fallback)
        if price:
            return price
    return None


# =========================================================================
# image_urls
# =========================================================================

def _jsonld_image_urls(image: Any) -> List[str]:
    urls = []
    for item in _as_list(image):
        if isinstance(item, str):
            urls.append(item)
        elif isinstance(item, dict):
            url = item.get("contentUrl") or item.get("url") or item.get("@id")
            if isinstance(url, str):
                urls.append(url)
    return urls


def images_from_jsonld(doc: PageDocument) -> List[str]:
    urls = []
    for product in doc.products():
        urls.extend(_jsonld_image_urls(product.get("image")))
        for variant in _as_list(product.get("hasVariant")):
            if isinstance(variant, dict):
                urls.extend(_jsonld_image_urls(variant.get("image")))
    return urls


def images_from_og(doc: PageDocument) -> List[str]:
    urls = []
    for key in ("og:image:secure_url", "og:image", "og:image:url", "twitter:image"):
        urls.extend(doc.meta.get(key, []))
    return urls


def _img_source(img: Tag) -> Optional[str]:
    for attr in ("src", "data-src", "data-lazy-src", "data-original", "data-zoom-image"):
        value = img.get(attr)
        if isinstance(value, str) and value.strip() and not value.startswith("data:"):
            return value
    for attr in ("srcset", "data-srcset"):
        value = img.get(attr)
        if isinstance(value, str) and value.strip():
            # last srcset candidate is conventionally the largest
            candidates = [c.strip().split(" ")[0] for c in value.split(",") if c.strip()]
            if candidates:
                return candidates[-1]
    return None


def _declared_size_too_small(img: Tag) -> bool:
    for attr in ("width", "height"):
        value = img.get(attr)
        if isinstance(value, str):
            digits = value.replace("px", "").strip()
            if digits.isdigit() and int(digits) < 100:
                return True
    return False


def is_excluded_image(url: str) -> bool:
    """Assets that are never product photography: vector art, GIF pixels, favicons."""
    path = urlsplit(unquote(url).lower()).path
    return path.endswith((".svg", ".gif", ".ico"))


def is_decorative_image(url: str) -> bool:
    """
    Page chrome on <img> tags: logos, payment marks, social icons.

    Keywords match whole path tokens, so "striped-shirt.jpg" and
    "iconic-bag.jpg" are kept while "footer-logo.png" is not.
    """
    path = urlsplit(unquote(url).lower()).path
    for token in IMAGE_TOKEN_SPLIT_RE.split(path):
        if token in EXCLUDED_IMAGE_PATTERNS or (token.endswith("s") and token[:-1] in EXCLUDED_IMAGE_PATTERNS):
            return True
    return False


def images_from_img_tags(doc: PageDocument) -> List[str]:
    """
    Scored <img> tags, kept in document order.

    Score: product-ish URL +2, descriptive alt +2, CDN-ish URL +1,
    itemprop=image +3, product/gallery ancestor +2. Score >= 2 is kept.
    """
    images = []
    for img in doc.soup.find_all("img", limit=MAX_IMG_TAGS):
        src = _img_source(img)
        if not src:
            continue
        if img.get("role") == "presentation" or img.get("aria-hidden") == "true":
            continue
        if _declared_size_too_small(img):
            continue
        src_lower = src.lower()
        if is_excluded_image(src) or is_decorative_image(src):
            continue

        score = 0
        if any(p in src_lower for p in ("product", "item", "gallery", "/p/", "zoom")):
            score += 2
        alt = img.get("alt") or ""
        if isinstance(alt, str) and len(alt.strip()) > 10:
            score += 2
        if any(p in src_lower for p in ("cdn", "media", "assets", "images", "static")):
            score += 1
        if img.get("itemprop") == "image":
            score += 3

        parent = img.parent
        for _ in range(3):
            if not isinstance(parent, Tag):
                break
            classes = " ".join(parent.get("class", []) or []).lower()
            if "product" in classes or "gallery" in classes or "pdp" in classes:
                score += 2
                break
            parent = parent.parent

        if score >= 2:
            images.append(src)
            if len(images) >= MAX_IMG_TAG_IMAGES:
                break
    return images


def images_from_preload(doc: PageDocument) -> List[str]:
    urls = []
    for link in doc.soup.find_all("link", rel="preload"):
        href = link.get("href") or link.get("imagesrcset", "").split(" ")[0]
        if link.get("as") == "image" and href and IMAGE_EXTENSION_RE.search(href):
            urls.append(href)
    return urls


def images_from_inline_state(doc: PageDocument) -> List[str]:
    urls = []
    for script in doc.soup.find_all("script"):
        script_type = script.get("type")
        if script_type not in (None, "text/javascript", "application/json"):
            continue
        content = script.string or ""
        if len(content) < 500:
            continue
        if not any(indicator in content for indicator in INLINE_STATE_INDICATORS) \
                and script.get("id") != "__NEXT_DATA__":
            continue

        for pattern in INLINE_IMAGE_ARRAY_RES:
            for match in pattern.finditer(content):
                array_content = match.group(1).replace("\\/", "/").replace("\\u002F", "/")
                for url_match in INLINE_IMAGE_URL_RE.finditer(array_content):
                    urls.append(url_match.group().replace("__IMAGE_PARAMS__", "f_auto"))
    return urls


# =========================================================================
# garment_type
# =========================================================================

def _breadcrumb_names(doc: PageDocument) -> List[str]:
    names = []
    for crumbs in doc.jsonld.get("BreadcrumbList", []):
        for item in _as_list(crumbs.get("itemListElement")):
            if not isinstance(item, dict):
                continue
            name = item.get("name")
            inner = item.get("item")
            if not name and isinstance(inner, dict):
                name = inner.get("name")
            name = clean_text(name)
            if name:
                names.append(name)
    return names


def _first_matched(texts: Iterable[Optional[str]]) -> Optional[GarmentType]:
    for text in texts:
        garment = classify_garment(text)
        if garment != GarmentType.UNSUPPORTED:
            return garment
    return None


def garment_from_jsonld(doc: PageDocument) -> Optional[GarmentType]:
    texts = []
    for product in doc.products():
        for category in _as_list(product.get("category")):
            if isinstance(category, dict):
                category = category.get("name")
            if isinstance(category, str):
                texts.append(category)
    texts.append(" > ".join(_breadcrumb_names(doc)))
    return _first_matched(texts)


def garment_from_dom(doc: PageDocument) -> Optional[GarmentType]:
    texts = [doc.meta_first("product:category", "og:product:category", "category")]
    for selector in BREADCRUMB_SELECTORS:
        for elem in doc.soup.select(selector)[:2]:
            items = [li.get_text(" ", strip=True) for li in elem.find_all(["li", "a"])]
            text = " > ".join(i for i in items if i) or elem.get_text(" ", strip=True)
            if text and len(text) < MAX_TEXT_LENGTH:
                texts.append(text)
    return _first_matched(texts)


def garment_from_name(doc: PageDocument) -> Optional[GarmentType]:
    for rule in (name_from_jsonld, name_from_itemprop, name_from_og_title, name_from_h1, name_from_title_tag):
        name = rule(doc)
        if name:
            return _first_matched([name])
    return None


def garment_from_url(doc: PageDocument) -> Optional[GarmentType]:
    if not doc.base_url:
        return None
    path = unquote(urlsplit(doc.base_url).path)
    slug = re.sub(r"[/_\-.+]+", " ", path)
    return _first_matched([slug])


# =========================================================================
# availability
# =========================================================================

def availability_from_jsonld(doc: PageDocument) -> Optional[Availability]:
    found = set()
    for offer in doc.offers():
        status = normalize_schema_availability(offer.get("availability"))
        if status:
            found.add(status)
    for status in (Availability.IN_STOCK, Availability.LIMITED, Availability.OUT_OF_STOCK):
        if status in found:
            return status
    return None


def availability_from_itemprop(doc: PageDocument) -> Optional[Availability]:
    elem = doc.soup.select_one("[itemprop='availability']")
    if not elem:
        return None
    for value in (elem.get("href"), elem.get("content"), elem.get_text(" ", strip=True)):
        status = normalize_schema_availability(value) if value else None
        if status:
            return status
    return None


def availability_from_meta(doc: PageDocument) -> Optional[Availability]:
    return availability_from_text(doc.meta_first("product:availability", "og:availability"))


def availability_from_dom(doc: PageDocument) -> Optional[Availability]:
    for selector in STOCK_SELECTORS:
        for elem in doc.soup.select(selector)[:5]:
            for value in (
                elem.get("data-availability"),
                elem.get("data-stock-status"),
                elem.get_text(" ", strip=True)[:MAX_TEXT_LENGTH],
            ):
                status = availability_from_text(value) if value else None
                if status:
                    return status
            classes = " ".join(elem.get("class", []) or []).lower()
            if "out-of-stock" in classes:
                return Availability.OUT_OF_STOCK
            if "low-stock" in classes:
                return Availability.LIMITED
            if "in-stock" in classes:
                return Availability.IN_STOCK
    return None


def availability_from_buttons(doc: PageDocument) -> Optional[Availability]:
    """Add-to-cart button state, then "only N left" stock phrases."""
    for button in doc.soup.find_all(["button", "input"], limit=100):
        label = " ".join(
            str(v) for v in (
                button.get_text(" ", strip=True),
                button.get("value"),
                button.get("name"),
                button.get("aria-label"),
                " ".join(button.get("class", []) or []),
            ) if v
        )
        if SOLD_OUT_BUTTON_RE.search(label):
            return Availability.OUT_OF_STOCK
        if CART_BUTTON_RE.search(label):
            disabled = button.has_attr("disabled") or button.get("aria-disabled") == "true"
            return Availability.OUT_OF_STOCK if disabled else Availability.IN_STOCK

    node = doc.soup.find(string=STOCK_PHRASE_RE)
    if node is not None and not _in_script(node):
        return Availability.LIMITED
    return None


Rule = Tuple[Confidence, str, Callable[[PageDocument], Any]]

FIELD_RULES: Dict[FieldName, List[Rule]] = {
    FieldName.PRODUCT_NAME: [
        (Confidence.STRUCTURED, "jsonld_name", name_from_jsonld),
        (Confidence.STRUCTURED, "itemprop_name", name_from_itemprop),
        (Confidence.HEURISTIC, "og_title", name_from_og_title),
        (Confidence.HEURISTIC, "h1", name_from_h1),
        (Confidence.TEXT_PATTERN, "title_tag", name_from_title_tag),
    ],
    FieldName.BRAND: [
        (Confidence.STRUCTURED, "jsonld_brand", brand_from_jsonld),
        (Confidence.STRUCTURED, "itemprop_brand", brand_from_itemprop),
        (Confidence.HEURISTIC, "meta_brand", brand_from_meta),
        (Confidence.HEURISTIC, "dom_brand", brand_from_dom),
        (Confidence.TEXT_PATTERN, "site_name", brand_from_site_name),
        (Confidence.TEXT_PATTERN, "title_suffix", brand_from_title_suffix),
    ],
    FieldName.PRICE: [
        (Confidence.STRUCTURED, "jsonld_offer", price_from_jsonld),
        (Confidence.STRUCTURED, "itemprop_price", price_from_itemprop),
        (Confidence.HEURISTIC, "meta_price", price_from_meta),
        (Confidence.HEURISTIC, "dom_price", price_from_dom),
        (Confidence.TEXT_PATTERN, "text_scan", price_from_text_scan),
    ],
    FieldName.IMAGE_URLS: [
        (Confidence.STRUCTURED, "jsonld_image", images_from_jsonld),
        (Confidence.HEURISTIC, "og_image", images_from_og),
        (Confidence.HEURISTIC, "img_tags", images_from_img_tags),
        (Confidence.HEURISTIC, "preload", images_from_preload),
        (Confidence.TEXT_PATTERN, "inline_state", images_from_inline_state),
    ],
    FieldName.GARMENT_TYPE: [
        (Confidence.STRUCTURED, "jsonld_category", garment_from_jsonld),
        (Confidence.HEURISTIC, "dom_breadcrumbs", garment_from_dom),
        (Confidence.TEXT_PATTERN, "product_name_keywords", garment_from_name),
        (Confidence.TEXT_PATTERN, "url_keywords", garment_from_url),
    ],
    FieldName.AVAILABILITY: [
        (Confidence.STRUCTURED, "jsonld_availability", availability_from_jsonld),
        (Confidence.STRUCTURED, "itemprop_availability", availability_from_itemprop),
        (Confidence.HEURISTIC, "meta_availability", availability_from_meta),
        (Confidence.HEURISTIC, "dom_stock", availability_from_dom),
        (Confidence.TEXT_PATTERN, "cart_button", availability_from_buttons),
    ],
}


class ExtractionEngine:
    """
    Runs every field's rule list over one page.

    Extraction never fails a scrape: a rule that raises counts as "no
    signal" and an unparseable body yields no candidates.
    """

    def __init__(self, rules: Optional[Dict[FieldName, List[Rule]]] = None):
        self.rules = rules or FIELD_RULES
        self.logger = LayerLogger("extraction_engine")

    def extract(self, body: bytes, base_url: Optional[str] = None) -> List[FieldCandidate]:
        """
        Extract field candidates from raw page bytes.

        Args:
            body: Raw response body
            base_url: Final URL of the page, used to absolutize image URLs

        Returns:
            Candidates without strategy identity (stamped at ingestion)
        """
        if not body or not body.strip():
            self.logger.log_action("extract", "no_content", url=base_url)
            return []

        try:
            doc = PageDocument.parse(body, base_url)
        except Exception as e:
            self.logger.log_error(
                f"Failed to parse page: {str(e)}",
                error_type="parse_error",
                url=base_url,
            )
            return []

        candidates: List[FieldCandidate] = []
        for field_name, rules in self.rules.items():
            if field_name == FieldName.IMAGE_URLS:
                candidates.extend(self._run_image_rules(doc, rules))
            else:
                candidates.extend(self._run_scalar_rules(field_name, doc, rules))

        self.logger.log_action(
            "extract",
            "completed",
            url=base_url,
            candidates=len(candidates),
            fields_found=sorted({c.field.value for c in candidates}),
            jsonld_types=sorted(doc.jsonld.keys()),
        )
        return candidates

    def _apply(self, field_name: FieldName, rule_name: str, fn, doc: PageDocument) -> Any:
        try:
            return fn(doc)
        except Exception as e:
            self.logger.log_debug(
                "rule_failed", field=field_name.value, rule=rule_name, error=str(e)
            )
            return None

    def _run_scalar_rules(
        self, field_name: FieldName, doc: PageDocument, rules: List[Rule]
    ) -> List[FieldCandidate]:
        found: Dict[Confidence, FieldCandidate] = {}
        for confidence, rule_name, fn in rules:
            if confidence in found:
                continue
            value = self._apply(field_name, rule_name, fn, doc)
            if value is None:
                continue
            found[confidence] = FieldCandidate(
                field=field_name, value=value, confidence=confidence, rule=rule_name
            )
        return sorted(found.values(), key=lambda c: c.confidence, reverse=True)

    def _run_image_rules(self, doc: PageDocument, rules: List[Rule]) -> List[FieldCandidate]:
        candidates = []
        seen = set()
        for confidence, rule_name, fn in rules:
            for raw in self._apply(FieldName.IMAGE_URLS, rule_name, fn, doc) or []:
                url = absolutize(raw, doc.base_url)
                if not url or is_excluded_image(url):
                    continue
                key = image_key(url)
                if key in seen:
                    continue
                seen.add(key)
                candidates.append(FieldCandidate(
                    field=FieldName.IMAGE_URLS, value=url, confidence=confidence, rule=rule_name
                ))
        return candidates
