"""
FAQ assistant.

Matches a buyer's question against a fixed knowledge base by string
similarity. No language model is involved.

Confidence between two normalized questions:
  1.0  identical
  0.9  the question contains the known question
  0.8  the known question contains the question
  else mean share of common words, (common/len(a) + common/len(b)) / 2
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from storefront.core.config import Settings, get_settings
from storefront.core.redis import Cache
from storefront.models.user import ActivityAction
from storefront.schemas.assistant import AssistantAnswer
from storefront.services.user_profile import UserProfileService

logger = logging.getLogger(__name__)

CACHE_PREFIX = "assistant:"

ANSWER_THRESHOLD = 0.5
SUGGESTION_THRESHOLD = 0.3
CACHE_THRESHOLD = 0.7
MAX_SUGGESTIONS = 3

FALLBACK_ANSWER = (
    "Sorry, I don't have a specific answer for that question. "
    "Try rephrasing it or contact our support team."
)


@dataclass(frozen=True)
class FaqEntry:
    questions: tuple[str, ...]
    answer: str


KNOWLEDGE_BASE = (
    FaqEntry(
        ("how to buy", "how do i buy", "i want to buy"),
        "Browse the catalog to pick an account, then start a purchase with its ID. "
        "You will receive PIX payment instructions and the account is delivered after confirmation.",
    ),
    FaqEntry(
        ("payment method", "how to pay", "do you accept card", "payment methods"),
        "We accept PIX. After choosing a product you get a QR code and a PIX code to complete the payment.",
    ),
    FaqEntry(
        ("is there a warranty", "warranty", "refund", "chargeback"),
        "We do not offer warranty or refunds for sold accounts. Every account is checked before it is listed.",
    ),
    FaqEntry(
        ("change email", "update email", "change password"),
        "Change the account email and password right after you receive the access data "
        "so you have full control of the account.",
    ),
    FaqEntry(
        ("account banned", "i got banned", "ban", "suspension"),
        "We are not responsible for accounts banned after the purchase. Always follow the game rules "
        "and never use unauthorized software.",
    ),
    FaqEntry(
        ("delivery time", "how long", "when do i receive"),
        "Accounts are delivered after an administrator manually confirms the payment, "
        "usually within 5 to 30 minutes between 9am and 10pm.",
    ),
    FaqEntry(
        ("specific skin", "has skin", "looking for account with"),
        "To find accounts with specific skins, list the catalog and filter by type, rank or skin count.",
    ),
    FaqEntry(
        ("did not receive", "payment not confirmed", "paid but did not receive"),
        "If you paid but have not received the account yet, wait for the manual approval. "
        "If more than one hour has passed, contact our support team.",
    ),
    FaqEntry(
        ("talk to an agent", "talk to a person", "human support"),
        "To talk to a person, open a support request with a short description of your problem.",
    ),
)


def normalize_question(question: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    text = re.sub(r"[^\w\s]", "", question.lower())
    return re.sub(r"\s+", " ", text).strip()


def match_confidence(a: str, b: str) -> float:
    """Similarity of two normalized questions in [0, 1]."""
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if b in a:
        return 0.9
    if a in b:
        return 0.8

    words_a = a.split(" ")
    words_b = b.split(" ")
    common = [word for word in words_a if word in words_b]
    if not common:
        return 0.0
    return (len(common) / len(words_a) + len(common) / len(words_b)) / 2


class Assistant:

    def __init__(
        self,
        cache: Cache,
        users: UserProfileService,
        settings: Optional[Settings] = None,
        knowledge_base: tuple[FaqEntry, ...] = KNOWLEDGE_BASE,
    ):
        self.cache = cache
        self.users = users
        self.settings = settings or get_settings()
        self.knowledge_base = knowledge_base

    def _entry_confidence(self, normalized: str, entry: FaqEntry) -> float:
        return max(match_confidence(normalized, normalize_question(q)) for q in entry.questions)

    def find_best_match(self, question: str) -> tuple[Optional[FaqEntry], float]:
        normalized = normalize_question(question)
        best, best_confidence = None, 0.0
        for entry in self.knowledge_base:
            confidence = self._entry_confidence(normalized, entry)
            if confidence > best_confidence and confidence > ANSWER_THRESHOLD:
                best, best_confidence = entry, confidence
        return best, best_confidence

    def related_suggestions(self, question: str, exclude: Optional[FaqEntry] = None) -> list[str]:
        normalized = normalize_question(question)
        scored = []
        for entry in self.knowledge_base:
            if entry is exclude:
                continue
            confidence = self._entry_confidence(normalized, entry)
            if confidence > SUGGESTION_THRESHOLD:
                scored.append((confidence, entry.questions[0]))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [q for _, q in scored[:MAX_SUGGESTIONS]]

    def ask(self, question: str, user_id: str) -> AssistantAnswer:
        key = f"{CACHE_PREFIX}{normalize_question(question)}"
        cached = self.cache.get(key)

        if cached is not None:
            logger.debug(f"Using cached answer for '{question}'")
            answer = AssistantAnswer(
                id=str(uuid.uuid4()),
                question=question,
                answer=cached["answer"],
                suggestions=cached.get("suggestions", []),
                timestamp=datetime.now(),
            )
        else:
            entry, confidence = self.find_best_match(question)
            answer = AssistantAnswer(
                id=str(uuid.uuid4()),
                question=question,
                answer=entry.answer if entry else FALLBACK_ANSWER,
                suggestions=self.related_suggestions(question, exclude=entry),
                timestamp=datetime.now(),
            )
            if entry and confidence > CACHE_THRESHOLD:
                self.cache.set(
                    key,
                    {"answer": answer.answer, "suggestions": answer.suggestions},
                    ttl=self.settings.ASSISTANT_CACHE_TTL,
                )

        self.users.record_activity(user_id, ActivityAction.ASSISTANT_QUERY, {
            "question": question,
            "response_id": answer.id,
        })
        return answer

    def record_feedback(self, response_id: str, user_id: str, feedback_type: str) -> bool:
        """Attach feedback to an earlier answer given to the same user."""
        query = next(
            (
                activity for activity in self.users.get_history(user_id, limit=self.settings.ACTIVITY_HISTORY_LIMIT)
                if activity.action == ActivityAction.ASSISTANT_QUERY
                and (activity.data or {}).get("response_id") == response_id
            ),
            None,
        )
        if query is None:
            logger.warning(f"Feedback for unknown response {response_id} from {user_id}")
            return False

        recorded = self.users.record_activity(user_id, ActivityAction.ASSISTANT_FEEDBACK, {
            "response_id": response_id,
            "question": query.data.get("question"),
            "feedback_type": feedback_type,
        })
        if recorded:
            logger.info(f"Feedback {feedback_type} recorded for response {response_id} from {user_id}")
        return recorded
