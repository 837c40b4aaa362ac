"""Named discovery intents.

Every intent's exclude list ends with ``GLOBAL_NEGATIVE_KEYWORDS`` (job boards,
retail storefronts and listicle noise), appended when the catalog is built.
"""

from __future__ import annotations

from collections.abc import Sequence

from app.models.candidate import ChannelType
from app.models.intent import (
    DiscoveryIntent,
    GeographyConfig,
    IntentCategory,
    IntentLimits,
)
from app.services.discovery.errors import IntentInactiveError, IntentNotFoundError

COUNTRY_PLACEHOLDER = "{country}"

COUNTRY_NAMES: dict[str, str] = {
    "ZA": "South Africa",
    "BW": "Botswana",
    "NA": "Namibia",
    "MZ": "Mozambique",
    "ZW": "Zimbabwe",
    "KE": "Kenya",
    "NG": "Nigeria",
    "GH": "Ghana",
}

GLOBAL_NEGATIVE_KEYWORDS: tuple[str, ...] = (
    # job and career pages
    "jobs",
    "job posting",
    "vacancies",
    "vacancy",
    "internship",
    "internships",
    "careers",
    "career",
    "we are hiring",
    "apply now",
    "recruitment",
    "job opportunity",
    "employment",
    "hiring",
    "linkedin.com/jobs",
    "indeed.com",
    "glassdoor",
    "jobsza",
    "pnet.co.za",
    "careers24",
    # retail storefronts
    "retail store",
    "online shop",
    "buy online",
    "add to cart",
    "shopping cart",
    "checkout",
    "free shipping",
    "customer reviews",
    # listicles and reference pages
    "top 10",
    "top 20",
    "top 50",
    "top 100",
    "best agencies",
    "list of",
    "directory of",
    "wikipedia.org",
    "what is",
    "how to choose",
    "vs ",
    "versus",
)

GAUTENG_PRIORITY_REGIONS: tuple[str, ...] = (
    "Gauteng",
    "Johannesburg",
    "Pretoria",
    "Sandton",
    "Midrand",
    "Centurion",
    "Randburg",
    "Rosebank",
    "Bryanston",
    "Fourways",
    "Roodepoort",
    "Boksburg",
    "Kempton Park",
    "Germiston",
    "Alberton",
    "Edenvale",
)

ZA_GAUTENG_FIRST = GeographyConfig(
    primary_country="ZA",
    priority_regions=GAUTENG_PRIORITY_REGIONS,
    region_boost=0.15,
)

_SEARCH_CHANNELS = (ChannelType.GOOGLE, ChannelType.KEYWORD)
_STANDARD_LIMITS = IntentLimits(max_companies=10, max_leads=10, max_queries=3, time_budget_ms=120_000)


def _intent(
    *,
    id: str,
    name: str,
    description: str,
    category: IntentCategory,
    target_countries: Sequence[str],
    seed_queries: Sequence[str],
    include_keywords: Sequence[str] = (),
    exclude_keywords: Sequence[str] = (),
    limits: IntentLimits = _STANDARD_LIMITS,
    geography: GeographyConfig | None = None,
    active: bool = True,
) -> DiscoveryIntent:
    return DiscoveryIntent(
        id=id,
        name=name,
        description=description,
        category=category,
        target_countries=tuple(target_countries),
        seed_queries=tuple(seed_queries),
        include_keywords=tuple(include_keywords),
        exclude_keywords=(*exclude_keywords, *GLOBAL_NEGATIVE_KEYWORDS),
        channels=_SEARCH_CHANNELS,
        limits=limits,
        geography=geography,
        active=active,
    )


AGENCIES_ALL = _intent(
    id="agencies_all",
    name="Agencies (Marketing/Branding/Creative)",
    description=(
        "Marketing, branding, creative, and activation agencies that need branded apparel "
        "for client campaigns. Includes BTL, experiential, and promotional agencies."
    ),
    category=IntentCategory.AGENCY,
    target_countries=["ZA"],
    geography=ZA_GAUTENG_FIRST,
    seed_queries=[
        "marketing agency Gauteng South Africa",
        "branding agency Johannesburg",
        "creative agency Pretoria",
        "digital marketing agency Gauteng",
        "BTL agency South Africa",
        "experiential marketing agency Johannesburg",
        "brand activation agency Gauteng",
        "promotional marketing agency South Africa",
        "advertising agency Johannesburg Pretoria",
        "event marketing agency Gauteng",
    ],
    include_keywords=[
        "marketing",
        "branding",
        "creative",
        "advertising",
        "activation",
        "experiential",
        "campaign",
        "corporate",
        "merchandise",
        "apparel",
        "uniform",
        "promotional",
        "btl",
        "atl",
        "agency",
        "client portfolio",
        "our clients",
        "case studies",
    ],
    exclude_keywords=[
        "course",
        "training",
        "university",
        "college",
        "learn marketing",
        "marketing degree",
        "logistics company",
        "shipping company",
        "mining company",
        "oil company",
        "petroleum",
        "insurance company",
        "law firm",
        "accounting firm",
        "construction company",
    ],
)

SCHOOLS_ALL = _intent(
    id="schools_all",
    name="Schools (Uniforms/Embroidery)",
    description=(
        "Schools and educational institutions that purchase school uniforms, embroidered "
        "items, and sports kits."
    ),
    category=IntentCategory.SCHOOLS,
    target_countries=["ZA"],
    geography=ZA_GAUTENG_FIRST,
    seed_queries=[
        "school uniform supplier Gauteng",
        "embroidery school uniforms Johannesburg",
        "sports kit supplier schools Gauteng",
        "school uniforms Pretoria",
        "school embroidery supplier South Africa",
        "school sports wear Johannesburg",
        "private school uniforms Gauteng",
        "school blazer supplier South Africa",
    ],
    include_keywords=[
        "school",
        "uniform",
        "embroidery",
        "sports kit",
        "supplier",
        "apparel",
        "blazer",
        "sports wear",
        "tracksuits",
        "school clothing",
        "educational",
        "academy",
        "college",
        "high school",
        "primary school",
    ],
    exclude_keywords=[
        "second hand",
        "used uniforms",
        "uniform rental",
    ],
)

TENDERS_UNIFORMS_MERCH = _intent(
    id="tenders_uniforms_merch",
    name="Government Tenders (Uniforms/PPE/Merch)",
    description=(
        "Government tenders and RFQs for uniforms, PPE, corporate clothing, promotional "
        "items, and embroidery/printing, mostly from the eTender Publication Portal."
    ),
    category=IntentCategory.TENDERS,
    target_countries=["ZA"],
    geography=ZA_GAUTENG_FIRST,
    seed_queries=[
        "site:etenders.gov.za uniform",
        'site:etenders.gov.za "corporate clothing"',
        "site:etenders.gov.za PPE",
        'site:etenders.gov.za "promotional items"',
        "site:etenders.gov.za workwear",
        "site:etenders.gov.za embroidery",
        'site:etenders.gov.za "protective clothing"',
        "government tender uniform supply South Africa",
        "RFQ corporate clothing Gauteng",
    ],
    include_keywords=[
        "tender",
        "rfq",
        "rfp",
        "bid",
        "supply",
        "uniforms",
        "corporate clothing",
        "ppe",
        "embroidery",
        "printing",
        "promotional items",
        "workwear",
        "protective clothing",
        "government",
        "municipality",
        "department",
        "closing date",
        "quotation",
        "procurement",
    ],
    exclude_keywords=[
        "construction tender",
        "building tender",
        "software tender",
        "IT tender",
        "IT services",
        "consulting services",
        "audit services",
        "legal services",
        "catering tender",
        "transport tender",
        "vehicle tender",
        "stationery tender",
    ],
    limits=IntentLimits(max_companies=10, max_leads=10, max_queries=5, time_budget_ms=120_000),
)

BUSINESSES_SME_CEO_AND_CORPORATE_MARKETING = _intent(
    id="businesses_sme_ceo_and_corporate_marketing",
    name="Businesses (SME & Corporate Buyers)",
    description=(
        "SME owners and corporate marketing/procurement managers who buy uniforms, "
        "workwear, and promotional merchandise for their companies."
    ),
    category=IntentCategory.BUSINESS,
    target_countries=["ZA"],
    geography=ZA_GAUTENG_FIRST,
    seed_queries=[
        "corporate gifts supplier Gauteng",
        "company uniforms supplier Johannesburg",
        "workwear supplier Pretoria",
        "promotional clothing supplier Gauteng",
        "corporate apparel South Africa",
        "branded workwear Johannesburg",
        "corporate merchandise supplier Gauteng",
        "company branding clothing Pretoria",
        "staff uniforms supplier South Africa",
        "promotional merchandise Gauteng",
    ],
    include_keywords=[
        "procurement",
        "marketing",
        "corporate gifts",
        "uniforms",
        "workwear",
        "ppe",
        "branding",
        "embroidered",
        "printed",
        "supplier",
        "corporate apparel",
        "staff clothing",
        "company uniform",
        "branded merchandise",
        "promotional products",
    ],
    exclude_keywords=[
        "wholesale retail",
        "retail only",
        "consumer",
        "fashion retail",
        "clothing store",
    ],
)

EVENTS_EXHIBITIONS_SA = _intent(
    id="events_exhibitions_sa",
    name="Exhibitions & Events (SA)",
    description=(
        "Event organisers, exhibition companies, and exhibitors/sponsors of upcoming events "
        "who need branded merchandise, uniforms, and promotional items."
    ),
    category=IntentCategory.EVENT,
    target_countries=["ZA"],
    geography=ZA_GAUTENG_FIRST,
    seed_queries=[
        "site:.za exhibition exhibitors list branded merchandise",
        "Gauteng expo exhibitors list sponsors",
        "conference sponsors South Africa branded apparel",
        "golf day corporate event sponsors branded caps shirts",
        "trade show exhibitors Gauteng branded merchandise",
        "exhibition sponsors Johannesburg promotional items",
        "corporate event organizers South Africa branded apparel",
        "brand activation events Gauteng branded merchandise",
        "expo sponsors Pretoria branded caps shirts",
        "conference exhibitors South Africa promotional items",
    ],
    include_keywords=[
        "exhibitors",
        "exhibitor",
        "sponsors",
        "sponsor",
        "partners",
        "partner",
        "activation",
        "brand activation",
        "conference",
        "expo",
        "exhibition",
        "trade show",
        "golf day",
        "corporate event",
        "event organizer",
        "event management",
        "event company",
        "exhibition company",
        "conference organizer",
        "branded merchandise",
        "promotional items",
        "branded apparel",
        "branded caps",
        "branded shirts",
        "event merchandise",
        "exhibition merchandise",
        "sponsor merchandise",
    ],
    exclude_keywords=[
        "wedding",
        "birthday party",
        "private party",
        "personal event",
        "consumer event",
        "retail event",
        "event coordinator job",
        "event manager vacancy",
        "event planning course",
        "event management degree",
    ],
)

REFERRAL_ECOSYSTEM_PROSPECTS = _intent(
    id="referral_ecosystem_prospects",
    name="Referral Ecosystem Prospects",
    description=(
        "Directories, associations, and referral networks such as preferred supplier "
        "lists, approved vendors and tender panels."
    ),
    category=IntentCategory.REFERRAL,
    target_countries=["ZA", "BW"],
    seed_queries=[
        "preferred supplier list corporate clothing {country}",
        "approved vendor uniform suppliers {country}",
        "tender supplier panel workwear {country}",
        "business directory corporate apparel {country}",
        "industry association uniform manufacturers {country}",
        "chamber of commerce suppliers clothing {country}",
        "procurement portal corporate wear {country}",
        "B-BBEE supplier database clothing {country}",
        "government supplier list uniforms {country}",
        "vendor registration corporate clothing {country}",
    ],
    include_keywords=[
        "preferred supplier",
        "approved vendor",
        "panel",
        "tender",
        "supplier list",
        "directory",
        "association",
        "chamber",
        "procurement",
        "vendor registration",
        "B-BBEE",
        "supplier database",
    ],
)

CORPORATE_UNIFORMS_WORKWEAR_BUYERS = _intent(
    id="corporate_uniforms_workwear_buyers",
    name="Corporate Uniforms & Workwear Buyers",
    description="Companies actively seeking corporate uniforms, workwear, and PPE suppliers.",
    category=IntentCategory.BUYER,
    target_countries=["ZA", "BW"],
    seed_queries=[
        "corporate uniform supplier {country}",
        "workwear manufacturer {country}",
        "PPE supplier {country}",
        "branded workwear {country}",
        "staff uniform company {country}",
        "industrial clothing supplier {country}",
        "safety wear manufacturer {country}",
        "hospitality uniforms {country}",
        "school uniforms manufacturer {country}",
        "medical scrubs supplier {country}",
        "construction workwear {country}",
        "security uniforms supplier {country}",
    ],
    include_keywords=[
        "uniform",
        "workwear",
        "PPE",
        "corporate clothing",
        "branded apparel",
        "staff clothing",
        "industrial wear",
        "safety wear",
        "hospitality",
        "school uniform",
        "scrubs",
        "overalls",
    ],
)

EVENTS_CONFERENCES_EXPOS = _intent(
    id="events_conferences_expos",
    name="Events, Conferences & Expos",
    description="Event organisers, conference venues, and exhibition companies needing branded apparel.",
    category=IntentCategory.EVENT,
    target_countries=["ZA", "BW"],
    seed_queries=[
        "event management company {country}",
        "conference organizer {country}",
        "exhibition company {country}",
        "expo organizer {country}",
        "corporate events company {country}",
        "trade show organizer {country}",
        "conference venue {country}",
        "event planner corporate {country}",
        "MICE company {country}",
        "business events organizer {country}",
    ],
    include_keywords=[
        "event",
        "conference",
        "exhibition",
        "expo",
        "trade show",
        "MICE",
        "corporate events",
        "venue",
        "organizer",
        "planner",
        "congress",
    ],
    exclude_keywords=["wedding", "birthday", "party planner"],
)

# Superseded by agencies_all; kept so historical runs still resolve by id.
AGENCIES_MARKETING_BRANDING = _intent(
    id="agencies_marketing_branding",
    name="Marketing & Branding Agencies (Legacy)",
    description=(
        "Creative, branding, and activation agencies that need branded apparel for client campaigns."
    ),
    category=IntentCategory.AGENCY,
    target_countries=["ZA", "BW"],
    seed_queries=[
        "marketing agency {country}",
        "branding agency corporate {country}",
        "activation agency events {country}",
        "creative agency brand {country}",
        "BTL marketing agency {country}",
        "experiential marketing {country}",
        "promotional marketing agency {country}",
        "brand activation company {country}",
        "event marketing agency {country}",
        "advertising agency corporate {country}",
    ],
    active=False,
)

INTENT_CATALOG: tuple[DiscoveryIntent, ...] = (
    AGENCIES_ALL,
    SCHOOLS_ALL,
    TENDERS_UNIFORMS_MERCH,
    BUSINESSES_SME_CEO_AND_CORPORATE_MARKETING,
    EVENTS_EXHIBITIONS_SA,
    REFERRAL_ECOSYSTEM_PROSPECTS,
    CORPORATE_UNIFORMS_WORKWEAR_BUYERS,
    EVENTS_CONFERENCES_EXPOS,
    AGENCIES_MARKETING_BRANDING,
)

DEFAULT_DAILY_INTENTS: tuple[str, ...] = (
    "agencies_all",
    "tenders_uniforms_merch",
    "businesses_sme_ceo_and_corporate_marketing",
)

_BY_ID = {intent.id: intent for intent in INTENT_CATALOG}


def get_intent(intent_id: str) -> DiscoveryIntent | None:
    return _BY_ID.get(intent_id)


def list_intents() -> list[DiscoveryIntent]:
    return list(INTENT_CATALOG)


def get_active_intents() -> list[DiscoveryIntent]:
    return [intent for intent in INTENT_CATALOG if intent.active]


def get_intents_by_category(category: IntentCategory) -> list[DiscoveryIntent]:
    return [intent for intent in INTENT_CATALOG if intent.category is category]


def validate_intent_id(intent_id: str) -> DiscoveryIntent:
    """Return the active intent for ``intent_id`` or raise a not-found/inactive error."""
    intent = get_intent(intent_id)
    if intent is None:
        raise IntentNotFoundError(intent_id)
    if not intent.active:
        raise IntentInactiveError(intent_id)
    return intent


def country_name(code: str) -> str:
    return COUNTRY_NAMES.get(code.upper(), code)
