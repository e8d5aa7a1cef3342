"""Knowledge-base grounded explanations for SAP terms and processes."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

from sap_assistant.agent.llm import LanguageModel
from sap_assistant.config import MatchConfig
from sap_assistant.errors import UpstreamUnavailable
from sap_assistant.retrieval.fuzzy import FuzzyIndex, compact
from sap_assistant.types import KnowledgeEntry

logger = logging.getLogger(__name__)

QuestionShape = Literal["definition", "process"]
DefinitionOutcome = Literal["grounded", "ungrounded", "declined", "clarify", "failed"]

_PROCESS_PATTERN = re.compile(
    r"\b(process|processes|how to|how do i|how can i|steps)\b", flags=re.IGNORECASE
)
_ADMISSION_PATTERN = re.compile(r"\b(couldn't|could not|can't|cannot) find\b", flags=re.IGNORECASE)

EXPLAINER_PERSONA = "You are a helpful SAP assistant explaining concepts simply."
PROCESS_PERSONA = "You are an SAP expert explaining processes clearly and concisely."

MISSING_TERM_TEXT = "Please tell me which SAP term or process you want explained."
DEFINITION_NOT_FOUND = (
    "I couldn't find a specific definition for '{term}' in my knowledge base. "
    "Could you provide more context or check the spelling?"
)
PROCESS_NOT_FOUND = (
    "I couldn't find specific details for the '{term}' process. "
    "Could you describe what you're trying to achieve?"
)
EXPLANATION_FAILED = (
    "Sorry, I encountered an issue while trying to explain '{term}'. Please try again."
)


@dataclass(slots=True)
class DefinitionAnswer:
    content: str
    outcome: DefinitionOutcome
    shape: QuestionShape
    term: str | None = None
    matched_terms: list[str] = field(default_factory=list)


def question_shape(utterance: str) -> QuestionShape:
    """``process`` for "how to"/"steps" questions, otherwise ``definition``."""
    return "process" if _PROCESS_PATTERN.search(utterance or "") else "definition"


def admits_not_found(text: str) -> bool:
    return bool(_ADMISSION_PATTERN.search(text or ""))


def grounded_prompt(
    term: str, candidates: list[KnowledgeEntry], shape: QuestionShape
) -> str:
    primary = candidates[0]
    lines = [f'The user asked about "{term}".']
    lines.append(
        f'Our knowledge base defines "{primary.term}" as: "{primary.definition}"'
    )
    for other in candidates[1:]:
        lines.append(f'Related entry "{other.term}": "{other.definition}"')
    lines.append(
        f'Explain only "{primary.term}". Use related entries only if they clarify it; '
        "do not explain them separately."
    )
    if shape == "process":
        lines.append(
            "Explain the definition clearly, then outline the typical steps of the related "
            "SAP process as a short numbered list, using the definition and your general "
            "SAP knowledge."
        )
    else:
        lines.append("Explain the definition in a friendly, human-like way.")
    lines.append("Include at most one simple analogy if it helps. Provide only the final explanation.")
    return "\n".join(lines)


def fallback_prompt(term: str, shape: QuestionShape) -> str:
    if shape == "process":
        return (
            f'The user asked about the SAP process for "{term}". It wasn\'t found in our '
            "knowledge base. Based on your general SAP knowledge, outline the typical steps "
            "as a short numbered list, only if you are confident this is an SAP process. "
            "Keep it concise; one simple analogy is allowed. "
            f'If unsure, respond with exactly: "{PROCESS_NOT_FOUND.format(term=term)}"'
        )
    return (
        f'The user asked for a definition of the SAP term "{term}". It wasn\'t found in our '
        "knowledge base. Provide a concise, friendly definition ONLY if you are confident "
        "you know what it means in an SAP context; one simple analogy is allowed. "
        f'If unsure, respond with exactly: "{DEFINITION_NOT_FOUND.format(term=term)}"'
    )


class DefinitionResolver:
    """Answers "what is X" / "how do I do X" questions.

    The knowledge base is searched first. A confident hit grounds the model's
    explanation; otherwise the model may answer from general knowledge but is
    told to decline explicitly when unsure. Without a model the knowledge-base
    text is returned as-is.
    """

    def __init__(
        self,
        knowledge: FuzzyIndex,
        llm: LanguageModel | None = None,
        config: MatchConfig | None = None,
    ) -> None:
        self.knowledge = knowledge
        self.llm = llm
        self.config = config or MatchConfig()

    def lookup(self, term: str) -> list[KnowledgeEntry]:
        """Up to ``kb_max_candidates`` entries scoring under the confidence cutoff.

        Short terms such as transaction codes are too easy to match by accident
        inside longer text, so they only hit entries whose compacted term
        contains them, exact matches first.
        """
        normalized = compact(term)
        if not normalized:
            return []
        if len(normalized) <= self.config.kb_short_term_length:
            records = [
                record
                for record in self.knowledge.records
                if normalized in compact(record["term"])
            ]
            records.sort(key=lambda record: compact(record["term"]) != normalized)
            return [
                KnowledgeEntry(term=str(record["term"]), definition=str(record["definition"]))
                for record in records[: self.config.kb_max_candidates]
            ]
        hits = self.knowledge.search(normalized)
        candidates = [
            KnowledgeEntry(term=str(hit.record["term"]), definition=str(hit.record["definition"]))
            for hit in hits
            if hit.score < self.config.kb_confidence_cutoff
        ]
        return candidates[: self.config.kb_max_candidates]

    async def resolve(self, term: str | None, utterance: str) -> DefinitionAnswer:
        shape = question_shape(utterance)
        search_term = (term or "").strip()
        if not search_term:
            logger.warning("Definition requested without a term")
            return DefinitionAnswer(content=MISSING_TERM_TEXT, outcome="clarify", shape=shape)

        candidates = self.lookup(search_term)
        logger.info(
            "Definition lookup term=%r normalized=%r shape=%s candidates=%s",
            search_term,
            compact(search_term),
            shape,
            [entry.term for entry in candidates],
        )
        if candidates:
            return await self._grounded(search_term, candidates, shape)
        return await self._ungrounded(search_term, shape)

    async def _grounded(
        self, term: str, candidates: list[KnowledgeEntry], shape: QuestionShape
    ) -> DefinitionAnswer:
        matched = [entry.term for entry in candidates]
        if self.llm is None:
            primary = candidates[0]
            return DefinitionAnswer(
                content=f"{primary.term}: {primary.definition}",
                outcome="grounded",
                shape=shape,
                term=term,
                matched_terms=matched,
            )

        persona = PROCESS_PERSONA if shape == "process" else EXPLAINER_PERSONA
        try:
            content = await self.llm.complete(persona, grounded_prompt(term, candidates, shape))
        except UpstreamUnavailable as exc:
            logger.error("Explanation for %r failed: %s", term, exc)
            return DefinitionAnswer(
                content=EXPLANATION_FAILED.format(term=term),
                outcome="failed",
                shape=shape,
                term=term,
                matched_terms=matched,
            )
        return DefinitionAnswer(
            content=content.strip(),
            outcome="grounded",
            shape=shape,
            term=term,
            matched_terms=matched,
        )

    async def _ungrounded(self, term: str, shape: QuestionShape) -> DefinitionAnswer:
        decline = (PROCESS_NOT_FOUND if shape == "process" else DEFINITION_NOT_FOUND).format(
            term=term
        )
        logger.warning("No confident knowledge-base match for %r", term)
        if self.llm is None:
            return DefinitionAnswer(content=decline, outcome="declined", shape=shape, term=term)

        persona = PROCESS_PERSONA if shape == "process" else EXPLAINER_PERSONA
        try:
            content = (await self.llm.complete(persona, fallback_prompt(term, shape))).strip()
        except UpstreamUnavailable as exc:
            logger.error("Fallback explanation for %r failed: %s", term, exc)
            return DefinitionAnswer(
                content=EXPLANATION_FAILED.format(term=term),
                outcome="failed",
                shape=shape,
                term=term,
            )
        if not content or admits_not_found(content):
            return DefinitionAnswer(
                content=content or decline, outcome="declined", shape=shape, term=term
            )
        return DefinitionAnswer(content=content, outcome="ungrounded", shape=shape, term=term)
