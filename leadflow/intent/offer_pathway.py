"""
Offer Pathway Engine - maps a subscriber's accumulated intent to the next offer.

compute_offer_recommendation() is a pure function: no I/O, no clock, no
shared state. Identical inputs always give an identical OfferRecommendation.

Decision ladder (first match wins):
    1. journey position "customer"              -> studio      0.90
    2. intent score >= 70                       -> membership  0.85
    3. 40 <= intent score < 70                  -> credits     0.75
    4. score < 40 and (opens >= 3 or behavior >= 30)
                                                -> trial       0.60
    5. score < 40, opens < 3, behavior < 30     -> none        0.40
    6. anything else                            -> trial       0.50
"""

from dataclasses import asdict, dataclass
from typing import Optional, Sequence, Tuple

MEMBERSHIP = "membership"
CREDITS = "credits"
STUDIO = "studio"
TRIAL = "trial"

OFFERS = (MEMBERSHIP, CREDITS, STUDIO, TRIAL)

MEMBERSHIP_MIN_SCORE = 70
CREDITS_MIN_SCORE = 40
TRIAL_MIN_EMAIL_OPENS = 3
TRIAL_MIN_BEHAVIOR_SCORE = 30


@dataclass(frozen=True)
class OfferRecommendation:
    recommendation: Optional[str]  # None means keep nurturing
    confidence: float
    rationale: str
    next_sequence: Tuple[str, ...]

    def to_dict(self) -> dict:
        d = asdict(self)
        d["next_sequence"] = list(self.next_sequence)
        return d


def _signal_summary(signals: Sequence) -> str:
    if not signals:
        return "no qualifying signals yet"
    types = []
    for s in signals:
        t = s.get("signal_type") if isinstance(s, dict) else str(s)
        if t and t not in types:
            types.append(t)
    shown = ", ".join(types[:3]) if types else "untyped"
    return f"{len(signals)} signal(s) ({shown})"


def compute_offer_recommendation(
    intent_score: int,
    signals: Sequence,
    email_opens: int,
    apa_history: Sequence,
    journey_position: str,
    blueprint_score: Optional[int] = None,
    behavior_score: Optional[int] = None,
    days_since_signup: Optional[int] = None,
) -> OfferRecommendation:
    """Recommend the next offer for a subscriber.

    Args:
        intent_score: Cumulative intent score.
        signals: Recorded signals (dicts with "signal_type" or plain type strings).
        email_opens: Number of marketing emails opened.
        apa_history: Prior offers presented to the subscriber, oldest first.
        journey_position: lead, nurture, warm, hot or customer.
        blueprint_score: Brand blueprint completion score, if known.
        behavior_score: On-site behavior score; treated as 0 when unknown.
        days_since_signup: Days since first contact, if known.
    """
    score = intent_score or 0
    opens = email_opens or 0
    behavior = behavior_score or 0
    context = _signal_summary(signals or ())
    if blueprint_score is not None:
        context += f", blueprint score {blueprint_score}"
    if days_since_signup is not None:
        context += f", {days_since_signup} day(s) since signup"
    if apa_history:
        context += f", {len(apa_history)} prior offer(s)"

    if journey_position == "customer":
        return OfferRecommendation(
            recommendation=STUDIO,
            confidence=0.9,
            rationale=f"Existing customer; upgrade to studio ({context}).",
            next_sequence=(STUDIO, MEMBERSHIP, CREDITS),
        )

    if score >= MEMBERSHIP_MIN_SCORE:
        return OfferRecommendation(
            recommendation=MEMBERSHIP,
            confidence=0.85,
            rationale=f"High intent score {score} (>= {MEMBERSHIP_MIN_SCORE}); "
                      f"ready for membership ({context}).",
            next_sequence=(MEMBERSHIP, CREDITS, TRIAL),
        )

    if score >= CREDITS_MIN_SCORE:
        return OfferRecommendation(
            recommendation=CREDITS,
            confidence=0.75,
            rationale=f"Moderate intent score {score} ({CREDITS_MIN_SCORE}-{MEMBERSHIP_MIN_SCORE - 1}); "
                      f"offer credits as a low-commitment step ({context}).",
            next_sequence=(CREDITS, MEMBERSHIP, TRIAL),
        )

    if opens >= TRIAL_MIN_EMAIL_OPENS or behavior >= TRIAL_MIN_BEHAVIOR_SCORE:
        return OfferRecommendation(
            recommendation=TRIAL,
            confidence=0.6,
            rationale=f"Low intent score {score} but engaged ({opens} email open(s), "
                      f"behavior score {behavior}); offer a trial ({context}).",
            next_sequence=(TRIAL, CREDITS, MEMBERSHIP),
        )

    if opens < TRIAL_MIN_EMAIL_OPENS and behavior < TRIAL_MIN_BEHAVIOR_SCORE:
        return OfferRecommendation(
            recommendation=None,
            confidence=0.4,
            rationale=f"Low intent score {score} with little engagement; "
                      f"continue nurture ({context}).",
            next_sequence=(TRIAL, CREDITS),
        )

    return OfferRecommendation(
        recommendation=TRIAL,
        confidence=0.5,
        rationale=f"No rule matched; default to trial ({context}).",
        next_sequence=(TRIAL, CREDITS, MEMBERSHIP),
    )


def _coerce_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def inputs_from_state(subscriber: dict, signals: list, email_opens: int,
                      days_since_signup: int = None) -> dict:
    """Build compute_offer_recommendation() keyword arguments from stored state.

    Optional scores and offer history live in the subscriber's
    lead_intelligence payload.
    """
    intel = subscriber.get("lead_intelligence") or {}
    apa = intel.get("apa_history") or []
    return {
        "intent_score": subscriber.get("intent_score") or 0,
        "signals": signals,
        "email_opens": email_opens,
        "apa_history": apa if isinstance(apa, list) else [],
        "journey_position": subscriber.get("journey_position") or "lead",
        "blueprint_score": _coerce_int(intel.get("blueprint_score")),
        "behavior_score": _coerce_int(intel.get("behavior_score")),
        "days_since_signup": days_since_signup,
    }
