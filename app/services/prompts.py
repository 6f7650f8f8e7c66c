"""
Prompt construction for gift suggestion generation.

Produces a system instruction (persona, scoring heuristics, budget, vendor and
delivery conventions, safety and output hygiene) and a user instruction that
embeds the concrete request and the exact number of items required.
"""

from app.agents.state import GiftRequest, PromptPayload
from app.core.config import PipelineSettings
from app.services.tags import normalize_user_tags

MIN_TAGS_PER_ITEM = 3
MAX_TAGS_PER_ITEM = 6

METRO_CITIES = ("Mumbai", "Delhi", "Bengaluru", "Chennai", "Hyderabad", "Pune")

PREFERRED_VENDORS = (
    "Amazon India", "Flipkart", "Myntra", "Nykaa", "Pepperfry",
    "FabIndia", "boAt", "Chumbak",
)

PRIMARY_CATEGORIES = (
    "Tech", "Home & Decor", "Experience", "Food/Sweets", "Fashion/Accessory",
    "Books", "Handicraft/Artisan", "Hobby Kit", "Wellness", "Subscription/Service",
)


PRICE_STEP = 10
PRICE_STEP_HIGH = 50
PRICE_STEP_HIGH_THRESHOLD = 2000


def required_count(offset: int, settings: PipelineSettings | None = None) -> int:
    """First page (offset 0) gets the larger batch; later pages the smaller."""
    settings = settings or PipelineSettings()
    return settings.first_batch_size if offset == 0 else settings.more_batch_size


def delivery_estimate_for(city: str | None) -> str:
    """Delivery convention the prompt asks for, reused for padded items."""
    city = (city or "").strip()
    if not city:
        return "4-7 working days across India"
    if city.lower() in {metro.lower() for metro in METRO_CITIES}:
        return f"1-3 working days in {city}"
    return f"3-5 working days in {city}"


def round_price(value: float) -> int:
    """Nearest 10 INR, or nearest 50 above ₹2000 (halves round up)."""
    step = PRICE_STEP_HIGH if value > PRICE_STEP_HIGH_THRESHOLD else PRICE_STEP
    return max(0, int((value + step / 2) // step * step))


# ======================================================================
# System prompt
# ======================================================================

SYSTEM_PROMPT = f"""\
You are an expert Indian gift curator and product-recommendation specialist. \
Adopt these internal rules before reading the user's request. They are for \
your reasoning only and must NOT be printed.

A. MINDSET
- Treat every supplied hobby and every supplied personality trait as evidence. \
Do not ignore any of them; use them to diversify and justify suggestions.
- Recommendations must be culturally appropriate, age appropriate, budget aware \
and practical to buy in India.

B. TAGS
- Each gift carries {MIN_TAGS_PER_ITEM}-{MAX_TAGS_PER_ITEM} matched_tags in Title Case, \
chosen from (or tightly derived from) the supplied hobbies and traits. Prefer \
direct matches.
- Across the whole array, cover as many distinct supplied tags as possible. If \
more than 8 tags are supplied, cluster them and represent every cluster.

C. MATCH SCORE
- match_score is a number from 0.00 to 1.00 with two decimals.
- Weigh hobby alignment 0.30, personality alignment 0.20, occasion/cultural \
fit 0.15, budget fit 0.15, delivery and vendor realism 0.10, category novelty 0.10.
- 0.70-1.00 excellent fit, 0.50-0.69 good fit, 0.30-0.49 fair fit.
- Sort the array by match_score, highest first.

D. BUDGET & PRICING
- Keep price_min/price_max inside [budget_min, budget_max] where possible.
- Prices are integer INR, rounded to the nearest 10 (nearest 50 above ₹2000).
- If an ideal item slightly exceeds the budget, stay within ±10% and cap its \
match_score at 0.60.
- price_min must be <= price_max and the range must be realistic for the item.

E. DIVERSITY
- Vary the primary category across gifts: {", ".join(PRIMARY_CATEGORIES)}.
- Never repeat the same (primary category + vendor) pair.

F. VENDOR & DELIVERY
- Prefer recognizable Indian vendors ({", ".join(PREFERRED_VENDORS)}) or a \
short, realistic local vendor name. Never invent URLs.
- If a city is given: metro cities ({", ".join(METRO_CITIES)}) use \
"1-3 working days in <City>", other cities use "3-5 working days in <City>".
- If no city is given use "4-7 working days across India".

G. SAFETY & AGE
- No weapons, illegal, unsafe or age-inappropriate items (e.g. alcohol for minors).
- For elderly recipients prefer accessible, easy-to-use items unless their \
hobbies say otherwise.

H. OUTPUT HYGIENE
- Output ONLY the JSON array. No prose, no markdown, no code fences, no comments.
- Every object has exactly these keys: title (string), description (string), \
price_min (integer), price_max (integer), match_score (number), matched_tags \
(array of strings), ai_rationale (string), delivery_estimate (string), \
vendor (string). No extra keys."""


# ======================================================================
# User prompt construction
# ======================================================================

def _delivery_instruction(city: str | None) -> str:
    if city:
        return (
            f'delivery_estimate must be a working-day range for {city}, '
            f'e.g. "1-3 working days in {city}" for metro cities or '
            f'"3-5 working days in {city}" otherwise.'
        )
    return 'delivery_estimate must be "4-7 working days across India".'


def build_user_prompt(request: GiftRequest, count: int) -> str:
    """Build the user prompt with all request fields and the exact item count."""
    user_tags = normalize_user_tags(request.hobbies, request.personalities)
    hobbies = normalize_user_tags(request.hobbies, [])
    personalities = normalize_user_tags([], request.personalities)

    parts: list[str] = []
    parts.append(
        f"Generate a JSON array of exactly {count} unique, high-quality gift "
        f"objects and return ONLY that array.\n"
    )

    parts.append("=== RECIPIENT ===")
    if request.name:
        parts.append(f"Recipient name: {request.name}")
    if request.age:
        parts.append(f"Age: {request.age} years old")
    parts.append(f"Relation: {request.relation}")
    parts.append(f"Occasion: {request.occasion}")
    parts.append(f"Hobbies: {', '.join(hobbies)}")
    parts.append(f"Personality: {', '.join(personalities)}")
    if request.city:
        parts.append(f"City: {request.city}")

    parts.append("\n=== BUDGET (INR) ===")
    parts.append(f"Range: {request.budget_min} - {request.budget_max}")
    parts.append(
        "Round prices to the nearest 10, or to the nearest 50 when above ₹2000."
    )

    parts.append("\n=== OUTPUT SCHEMA (ALL FIELDS REQUIRED) ===")
    parts.append(
        '[{"title": "<3-8 words>", "description": "<2-3 sentences referencing '
        'a hobby, trait or the occasion>", "price_min": <integer INR>, '
        '"price_max": <integer INR >= price_min>, "match_score": <0.00-1.00>, '
        f'"matched_tags": [<{MIN_TAGS_PER_ITEM}-{MAX_TAGS_PER_ITEM} Title Case tags>], '
        '"ai_rationale": "<1-2 sentences>", "delivery_estimate": "<working-day '
        'range>", "vendor": "<vendor name>"}]'
    )

    parts.append("\n=== RULES ===")
    parts.append(f"1. Output exactly {count} objects as a bare JSON array.")
    parts.append(
        f"2. Each gift has {MIN_TAGS_PER_ITEM}-{MAX_TAGS_PER_ITEM} matched_tags "
        f"drawn from: {', '.join(user_tags)}."
    )
    parts.append(
        "3. Across the array, every supplied hobby and trait should appear in "
        "at least one gift's matched_tags."
    )
    parts.append(f"4. {_delivery_instruction(request.city)}")
    parts.append(
        "5. Prefer recognizable Indian vendors; do not fabricate URLs."
    )
    if request.age:
        parts.append(
            f"6. Every item must be safe and appropriate for a {request.age}-year-old."
        )
    else:
        parts.append("6. Every item must be safe and age appropriate.")
    if not request.is_first_batch:
        parts.append(
            "7. This is a follow-up page: suggest different items from a "
            "typical first page of results."
        )

    parts.append(
        f"\nNow produce ONLY the JSON array of exactly {count} gift objects, "
        "ordered by match_score descending."
    )

    return "\n".join(parts)


def build_prompt(
    request: GiftRequest,
    settings: PipelineSettings | None = None,
) -> PromptPayload:
    """Render the full prompt payload for a request."""
    count = required_count(request.offset, settings)
    return PromptPayload(
        system=SYSTEM_PROMPT,
        user=build_user_prompt(request, count),
        required_count=count,
    )
