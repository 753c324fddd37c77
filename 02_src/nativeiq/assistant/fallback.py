"""Local keyword-matched responder used when the AI endpoint is unavailable."""

from dataclasses import dataclass

NO_INFORMATION_RESPONSE = "Sorry, I don't have information regarding that."


@dataclass(frozen=True)
class KeywordResponse:
    keywords: tuple[str, ...]
    response: str


KEYWORD_RESPONSES: tuple[KeywordResponse, ...] = (
    KeywordResponse(
        keywords=("total revenue", "revenue"),
        response=(
            "Total revenue is $125,430, up 12.5% versus yesterday. The uplift is driven "
            "by the lunchtime promo and higher premium-plan mix."
        ),
    ),
    KeywordResponse(
        keywords=("active users", "users", "active"),
        response=(
            "Active users are at 2,847, climbing 8.3%. Engagement looks healthy: "
            "retention cohorts are holding steady across desktop and mobile."
        ),
    ),
    KeywordResponse(
        keywords=("conversion rate", "conversion", "checkout"),
        response=(
            "Conversion rate is sitting at 3.24%, which is down 2.1%. Most of the "
            "slippage is coming from Safari mobile sessions during checkout."
        ),
    ),
    KeywordResponse(
        keywords=("premium plans", "premium"),
        response=(
            "Premium plan signups are surging, up 18% today, primarily from organic "
            "search traffic tied to the new brand campaign you launched."
        ),
    ),
    KeywordResponse(
        keywords=("payment gateway", "gateway", "payment"),
        response=(
            "Payment gateway errors ticked up to 4.2% for the last hour, which triggered "
            "the on-call alert. Engineering has the incident and mitigation is underway."
        ),
    ),
    KeywordResponse(
        keywords=("checkout flow optimization", "checkout flow", "a/b test"),
        response=(
            "Recommend an A/B on the new checkout flow; conversion dipped 2.1% since "
            "deployment. Let's isolate the new modal against the previous experience."
        ),
    ),
)


def fallback_response(
    prompt: str,
    table: tuple[KeywordResponse, ...] = KEYWORD_RESPONSES,
) -> str:
    """First entry with a keyword contained in the prompt wins."""
    normalized = prompt.lower()
    for entry in table:
        if any(keyword in normalized for keyword in entry.keywords):
            return entry.response
    return NO_INFORMATION_RESPONSE
