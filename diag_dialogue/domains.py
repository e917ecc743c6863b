"""Domain classification and the set-if-unset domain lock."""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from diag_dialogue import vocabulary as vocab
from diag_dialogue.matcher import any_match, first_match
from diag_dialogue.session import Domain, Session

logger = structlog.get_logger(__name__)

# First-letter code families that pin a domain outright, checked in order.
_CODE_FAMILY_DOMAINS = (
    ("U", Domain.NETWORK),
    ("C", Domain.BRAKES_ABS),
    ("B", Domain.BODY_ELECTRICAL),
)


def classify_domain(message: str, codes: Sequence[str]) -> Domain:
    """Map a message and the session's codes to one :class:`Domain`.

    Resolution order: code families (U, C, B), then the keyword clusters
    of :data:`~diag_dialogue.vocabulary.DOMAIN_KEYWORDS` in table order,
    then ``engine_drivability`` for any P-code or drivability keyword.
    """
    for prefix, domain in _CODE_FAMILY_DOMAINS:
        if any(c.startswith(prefix) for c in codes):
            return domain

    text = (message or "").lower()
    hit = first_match(vocab.DOMAIN_KEYWORDS, text)
    if hit is not None:
        return Domain(hit)

    if any(c.startswith("P") for c in codes) or any_match(vocab.DRIVABILITY_KEYWORDS, text):
        return Domain.ENGINE_DRIVABILITY
    return Domain.UNKNOWN


def lock_domain(session: Session, domain: Domain) -> Optional[Domain]:
    """Set ``session.domain`` if it is unset; return the effective domain.

    ``unknown`` is never locked so that a later, more specific message
    can still route the conversation.
    """
    if session.domain is not None:
        if domain not in (session.domain, Domain.UNKNOWN):
            logger.debug(
                "domain_change_ignored",
                locked=session.domain.value,
                detected=domain.value,
            )
        return session.domain
    if domain is Domain.UNKNOWN:
        return None
    session.domain = domain
    logger.info("domain_locked", conversation_id=session.conversation_id, domain=domain.value)
    return domain
