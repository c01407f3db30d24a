import logging
import re
from typing import Any, Dict, List, Optional

from busbot.data.faq_kb import CONTACT_METHODS, ESCALATION_KEYWORDS, FAQS, SUPPORT_CONTACT
from busbot.llm.oracle import ExtractionOracle
from busbot.utils.i18n import t, t_list
from busbot.utils.normalize import fold

logger = logging.getLogger(__name__)

DIRECT_ANSWER_SCORE = 2


def needs_escalation(message: str) -> bool:
    s = fold(message)
    return any(k in s for words in ESCALATION_KEYWORDS.values() for k in words)


def score_faq(message: str, faq: Dict[str, Any]) -> int:
    s = f" {re.sub(r'[^a-z0-9 ]', ' ', fold(message))} "
    return sum(1 for k in faq["keywords"] if f" {k} " in s)


def search_faq(message: str) -> List[tuple]:
    """[(score, faq)] best first, zero scores dropped."""
    scored = [(score_faq(message, f), f) for f in FAQS]
    scored = [x for x in scored if x[0] > 0]
    scored.sort(key=lambda x: x[0], reverse=True)
    return scored


def process_faq_query(message: str, lang: str = "en", oracle: Optional[ExtractionOracle] = None,
                      history: Optional[List[dict]] = None) -> Dict[str, Any]:
    if needs_escalation(message):
        return {
            "text": t("faq_escalation", lang, **SUPPORT_CONTACT),
            "entities": {"escalation": True, "contactMethods": CONTACT_METHODS},
            "suggestions": t_list("sugg_escalation", lang),
            "actions": [],
        }

    matches = search_faq(message)
    if matches and matches[0][0] >= DIRECT_ANSWER_SCORE:
        faq = matches[0][1]
        return {"text": faq["answer"].get(lang) or faq["answer"]["en"], "entities": {"faqId": faq["id"]},
                "suggestions": t_list("sugg_faq", lang), "actions": []}
    if matches:
        return {
            "text": t("faq_did_you_mean", lang),
            "entities": {"faqIds": [f["id"] for _, f in matches[:3]]},
            "suggestions": [f["question"].get(lang) or f["question"]["en"] for _, f in matches[:3]],
            "actions": [],
        }

    if oracle is not None:
        try:
            answer = oracle.answer_faq(message, history)
        except Exception as e:
            logger.warning("faq oracle failed: %s", e)
            answer = ""
        if answer:
            return {"text": answer, "entities": {}, "suggestions": t_list("sugg_faq", lang), "actions": []}

    return {"text": t("faq_not_found", lang), "entities": {}, "suggestions": t_list("sugg_faq", lang),
            "actions": []}
