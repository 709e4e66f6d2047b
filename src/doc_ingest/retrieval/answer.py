"""Grounded question answering over retrieved chunks.

The chat model is built in one place (:func:`get_llm`) so providers can be
swapped through configuration; any OpenAI-compatible endpoint works by
setting ``LLM_BASE_URL``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage

from doc_ingest.config import Settings, settings
from doc_ingest.retrieval.models import Answer

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel
    from langchain_core.messages import BaseMessage

    from doc_ingest.retrieval.models import RetrievalResult

logger = logging.getLogger(__name__)

QA_PROMPT = """\
You are an assistant for question-answering tasks. Use the following pieces \
of retrieved context to answer the question. If you don't know the answer, \
just say that you don't know. Use three sentences maximum and keep the \
answer concise.

Question: {question}

Context: {context}

Answer:"""


def get_llm(config: Settings = settings, temperature: float = 0.0):
    """Return the configured chat model.

    When ``config.llm_base_url`` is set the client is pointed at that
    OpenAI-compatible server instead of the OpenAI cloud API.
    """
    from langchain_openai import ChatOpenAI

    kwargs: dict = {
        "model": config.llm_model_name,
        "temperature": temperature,
        "timeout": config.request_timeout_seconds,
    }

    if config.llm_base_url:
        logger.info("Using OpenAI-compatible endpoint: %s", config.llm_base_url)
        kwargs["base_url"] = config.llm_base_url
        # Self-hosted servers ignore the key but the client needs a non-empty value.
        kwargs["api_key"] = config.openai_api_key or "EMPTY"
    else:
        kwargs["api_key"] = config.openai_api_key

    return ChatOpenAI(**kwargs)


def build_qa_prompt(question: str, results: list[RetrievalResult]) -> list[BaseMessage]:
    """Build the single-turn prompt sent to the chat model."""
    context = "\n".join(r.content for r in results)
    return [HumanMessage(content=QA_PROMPT.format(question=question, context=context))]


class AnswerGenerator:
    """Answers a question from already-retrieved chunks."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    def generate(self, question: str, results: list[RetrievalResult]) -> Answer:
        if not results:
            raise ValueError("Cannot answer without retrieved context")

        response = self._llm.invoke(build_qa_prompt(question, results))
        text = response.content if isinstance(response.content, str) else str(response.content)
        logger.info("Answered question from %d chunk(s)", len(results))
        return Answer(
            question=question,
            answer=text.strip(),
            sources=[r.citation for r in results],
        )
