"""Single source of truth for "what are we waiting for".

The gate owns ``session.expected_input``, ``last_question_key`` and
``asked_keys``.  Every question the controller asks goes through
:meth:`QuestionGate.ask`; every answer goes through
:meth:`QuestionGate.consume`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import structlog

from diag_dialogue import answers
from diag_dialogue.facts import merge_facts
from diag_dialogue.session import ExpectedInput, Session

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Answer:
    """A consumed answer to the outstanding question."""

    key: str
    kind: str
    domain: str
    value: Any
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def owner(self) -> str:
        return self.meta.get("owner", "")

    @property
    def inaccessible(self) -> bool:
        return self.value == answers.INACCESSIBLE


class QuestionGate:
    """Anti-redundancy gate bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    @property
    def pending(self) -> Optional[ExpectedInput]:
        return self.session.expected_input

    def can_ask(self, key: str) -> bool:
        """``False`` when *key* was the most recently asked question."""
        return self.session.last_question_key != key

    def expect_input(
        self,
        kind: str,
        domain: str,
        key: str,
        prompt: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> ExpectedInput:
        """Record the pending question, discarding any that is outstanding."""
        if kind not in answers.PARSERS:
            raise ValueError(f"Unknown expected-input kind '{kind}'")
        previous = self.session.expected_input
        if previous is not None:
            logger.info(
                "pending_question_discarded",
                conversation_id=self.session.conversation_id,
                discarded=previous.key,
                replaced_by=key,
            )
        expected = ExpectedInput(kind=kind, domain=domain, key=key, prompt=prompt, meta=dict(meta or {}))
        self.session.expected_input = expected
        return expected

    def ask(
        self,
        kind: str,
        domain: str,
        key: str,
        prompt: str,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        """Ask question *key* unless it was the last one asked.

        Returns the prompt to send, or ``None`` when suppressed.
        """
        if not self.can_ask(key):
            logger.debug("question_suppressed", conversation_id=self.session.conversation_id, key=key)
            return None
        self.expect_input(kind, domain, key, prompt, meta)
        self.session.last_question_key = key
        self.session.asked_keys.add(key)
        logger.info("question_asked", conversation_id=self.session.conversation_id, key=key, kind=kind)
        return prompt

    def consume(self, message: str) -> Optional[Answer]:
        """Parse *message* against the outstanding question.

        On success the derived fact is locked (``meta["bucket"]`` /
        ``meta["field"]``), the question is cleared and the
        :class:`Answer` is returned.  On failure ``None`` is returned and
        the question stays outstanding.
        """
        pending = self.session.expected_input
        if pending is None:
            return None

        if pending.meta.get("tier") is not None and answers.is_inaccessible(message):
            value: Any = answers.INACCESSIBLE
        else:
            value = answers.parse(pending.kind, message)
        if value is None:
            logger.info(
                "answer_unparsed",
                conversation_id=self.session.conversation_id,
                key=pending.key,
                kind=pending.kind,
            )
            return None

        if value != answers.INACCESSIBLE:
            self._lock(pending, value)
        self.session.expected_input = None
        logger.info(
            "answer_consumed",
            conversation_id=self.session.conversation_id,
            key=pending.key,
            value=value,
        )
        return Answer(key=pending.key, kind=pending.kind, domain=pending.domain, value=value, meta=pending.meta)

    def reprompt(self) -> str:
        """Deterministic re-issue of the outstanding prompt."""
        pending = self.session.expected_input
        if pending is None:
            raise RuntimeError("reprompt() called with no outstanding question")
        pending.reprompts += 1
        hint = answers.VOCABULARY_HINTS.get(pending.kind, "")
        return f"{hint}\n\n{pending.prompt}" if hint else pending.prompt

    def clear(self) -> None:
        self.session.expected_input = None

    # ------------------------------------------------------------------

    def _lock(self, pending: ExpectedInput, value: Any) -> None:
        bucket = pending.meta.get("bucket")
        if not bucket:
            return
        if isinstance(value, dict):
            merge_facts(self.session, bucket, value)
            return
        name = pending.meta.get("field") or pending.key
        if pending.meta.get("as_bool"):
            value = value == "yes"
        merge_facts(self.session, bucket, {name: value})
