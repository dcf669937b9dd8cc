"""
main.py
-------

Answer generation on top of the retriever.  :class:`RAGClient` pulls
the most relevant chunks for a question, places them in a prompt and
asks an OpenAI compatible chat model for an answer.
:class:`ChatSession` keeps the running conversation as an explicit
list of messages for multi-turn use.

Retrieval lives in :mod:`hybrid_search.hybrid_retrieval`; this module
only formats context and talks to the chat provider.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple, Union

from openai import OpenAI, OpenAIError

from .config import Settings
from .embedding import EmbeddingModel, Embedder
from .errors import GenerationError
from .hybrid_retrieval import HybridRetriever

logger = logging.getLogger(__name__)

EXIT_WORDS = ("bye", "quit", "exit")
NO_CONTEXT_ANSWER = (
    "I'm sorry, I couldn't find any relevant information to answer your question."
)

PROMPT_TEMPLATE = """You are a knowledgeable research assistant. Focus on providing accurate, concise answers based on the source material provided below.

Context from the indexed documents:
{context}

Guidelines:
- Base your answer strictly on the provided context
- Keep responses clear and focused
- If information is not in the context, admit uncertainty
- Mention the source document titles when they are relevant

Question: {question}

Answer the question while adhering to the above guidelines."""

COMPARE_QUESTIONS = (
    "What is Sherlock's favorite food?",
    "What does Sherlock like to wear?",
    "How many Sherlock Holmes stories are there?",
    "Who wrote Sherlock Holmes?",
    "Who is Sherlock's arch-enemy?",
)

Message = Dict[str, str]


def build_prompt(question: str, passages: Sequence[str]) -> str:
    """Number the context passages and place them in the prompt."""
    context = "\n".join(f"{i}. {text}" for i, text in enumerate(passages, 1))
    return PROMPT_TEMPLATE.format(context=context, question=question)


class RAGClient:
    """Retrieval-augmented answers over a :class:`HybridRetriever`.

    Parameters
    ----------
    retriever : HybridRetriever
        A built or loaded retriever.
    settings : Settings, optional
        Supplies the chat model name and API endpoint.
    client : OpenAI, optional
        A preconfigured chat client, mainly for tests.
    """

    def __init__(
        self,
        retriever: HybridRetriever,
        settings: Optional[Settings] = None,
        *,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.retriever = retriever
        self.settings = settings or retriever.settings
        self._client = client

    @classmethod
    def from_index(
        cls,
        directory: Union[str, Path],
        settings: Settings,
        *,
        embedder: Optional[Embedder] = None,
    ) -> "RAGClient":
        """Load saved indexes and wrap them in a client."""
        if embedder is None:
            embedder = EmbeddingModel.from_settings(settings)
        retriever = HybridRetriever.load(directory, embedder, settings)
        return cls(retriever, settings)

    @property
    def client(self) -> OpenAI:
        """Lazily create the chat client."""
        if self._client is None:
            self._client = OpenAI(
                api_key=self.settings.api_key or "unused",
                base_url=self.settings.base_url,
            )
        return self._client

    def context_for(self, question: str, *, top_k: int = 5, hybrid: bool = False) -> List[str]:
        """Texts of the ``top_k`` best chunks for ``question``."""
        if hybrid:
            results = self.retriever.search(question, limit=top_k)
        else:
            results = self.retriever.semantic_search(question, limit=top_k)
        return [result.text for result in results]

    def generate_answer(
        self,
        question: str,
        *,
        history: Sequence[Message] = (),
        top_k: int = 5,
        hybrid: bool = False,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ) -> str:
        """Answer ``question`` from retrieved context.

        Parameters
        ----------
        question : str
            The user's question.
        history : sequence of dict, optional
            Earlier role-tagged messages sent ahead of the new prompt.
        top_k : int
            Number of context passages to use.
        hybrid : bool
            Use fused hybrid results instead of semantic results only.
        temperature : float
            Sampling temperature for the language model.
        max_tokens : int
            Maximum number of tokens to generate.

        Returns
        -------
        str
            The generated answer, or a fixed apology when nothing
            relevant was retrieved.
        """
        passages = self.context_for(question, top_k=top_k, hybrid=hybrid)
        if not passages:
            return NO_CONTEXT_ANSWER
        messages = list(history) + [
            {"role": "user", "content": build_prompt(question, passages).strip()}
        ]
        try:
            response = self.client.chat.completions.create(
                model=self.settings.llm,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as exc:
            logger.error("Chat completion failed: %s", exc)
            raise GenerationError(f"Chat completion with {self.settings.llm} failed") from exc
        choice = response.choices[0]
        if getattr(choice, "finish_reason", None) == "length":
            logger.warning("Completion stopped at max_tokens=%d; answer may be truncated", max_tokens)
        message = choice.message.content
        return message.strip() if message else ""


def compare_models(
    retriever: HybridRetriever,
    settings: Settings,
    *,
    models: Optional[Sequence[str]] = None,
    questions: Sequence[str] = COMPARE_QUESTIONS,
    client: Optional[OpenAI] = None,
    top_k: int = 5,
    hybrid: bool = False,
) -> Iterator[Tuple[str, str, str]]:
    """Answer the same questions with several chat models.

    All models share ``retriever`` and the chat endpoint of ``settings``;
    only the model name changes.  Yields ``(model, question, answer)``
    in model order.  A model that fails is logged and skipped.
    """
    for model in models or settings.compare_models:
        rag = RAGClient(retriever, replace(settings, llm=model), client=client)
        logger.info("Comparing model %s", model)
        for question in questions:
            try:
                answer = rag.generate_answer(question, top_k=top_k, hybrid=hybrid)
            except GenerationError as exc:
                logger.warning("Skipping %s: %s", model, exc)
                break
            yield model, question, answer


def is_exit(text: str) -> bool:
    return text.strip().lower() in EXIT_WORDS


@dataclass
class ChatSession:
    """A multi-turn conversation with explicit history.

    Every call to :meth:`ask` appends the question and the answer to
    :attr:`history`, and sends the earlier turns along with the next
    question.
    """

    client: RAGClient
    top_k: int = 5
    hybrid: bool = False
    history: List[Message] = field(default_factory=list)

    def ask(self, question: str) -> str:
        answer = self.client.generate_answer(
            question, history=self.history, top_k=self.top_k, hybrid=self.hybrid
        )
        self.history.append({"role": "user", "content": question})
        self.history.append({"role": "assistant", "content": answer})
        return answer
