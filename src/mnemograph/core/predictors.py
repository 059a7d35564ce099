"""
Pluggable Predictors
====================
Typed contract for the optional models the knowledge system can use
(embedding, importance estimation, tag extraction, result re-ranking and
reasoning).

Every predictor exposes:

    ready() -> bool
    predict(request) -> result        # plain function or coroutine

Callers never see predictor failures. ``PredictorRegistry.invoke`` returns
``None`` when the capability has no ready predictor, when the predictor
raises or times out, or when it returns the wrong result type; the caller
then applies its deterministic fallback.

Usage:
    registry = PredictorRegistry(timeout_seconds=2.0)
    registry.register(Capability.EMBEDDING, my_embedder)
    result = await registry.invoke(
        Capability.EMBEDDING, EmbeddingRequest(text="hello"), EmbeddingResult
    )
    if result is None:
        ...  # fallback
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Type, TypeVar, runtime_checkable

from loguru import logger

from ._utils import run_in_thread
from .exceptions import PredictorError, PredictorTimeoutError

R = TypeVar("R")
T = TypeVar("T")


class Capability(Enum):
    EMBEDDING = "embedding"
    IMPORTANCE = "importance"
    TAG_EXTRACTION = "tag_extraction"
    RANKING = "ranking"
    REASONING = "reasoning"


# ------------------------------------------------------------------ #
#  Requests / Results                                                 #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class EmbeddingRequest:
    text: str


@dataclass(frozen=True)
class EmbeddingResult:
    embedding: Sequence[float]


@dataclass(frozen=True)
class ImportanceRequest:
    content: str
    knowledge_type: str
    metadata_count: int


@dataclass(frozen=True)
class ImportanceResult:
    importance: float


@dataclass(frozen=True)
class TagExtractionRequest:
    text: str


@dataclass(frozen=True)
class TagExtractionResult:
    tags: List[str]


@dataclass(frozen=True)
class RankingRequest:
    query: str
    candidate_contents: List[str]
    scores: List[float]
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RankingResult:
    """Multiplicative adjustments aligned with the request's candidates."""
    adjustments: List[float]


@dataclass(frozen=True)
class ReasoningRequest:
    question: str
    context_content: str
    context_node_count: int


@dataclass(frozen=True)
class ReasoningAnswer:
    answer: str
    confidence: float
    reasoning_steps: List[str] = field(default_factory=list)


# ------------------------------------------------------------------ #
#  Predictor protocol                                                 #
# ------------------------------------------------------------------ #

@runtime_checkable
class Predictor(Protocol):
    def ready(self) -> bool: ...

    def predict(self, request: Any) -> Any: ...


class PredictorRegistry:
    """
    Holds at most one predictor per capability and invokes it with a timeout.

    A registry is owned by one knowledge system instance; there is no
    process-wide registry.
    """

    def __init__(self, timeout_seconds: float = 2.0):
        self.timeout_seconds = timeout_seconds
        self._predictors: Dict[Capability, Predictor] = {}
        self._failures: Dict[Capability, int] = {}

    def register(self, capability: Capability, predictor: Predictor) -> None:
        self._predictors[capability] = predictor
        logger.info(f"Registered predictor for {capability.value}: {type(predictor).__name__}")

    def unregister(self, capability: Capability) -> None:
        if self._predictors.pop(capability, None) is not None:
            logger.info(f"Unregistered predictor for {capability.value}")

    def get(self, capability: Capability) -> Optional[Predictor]:
        return self._predictors.get(capability)

    def is_ready(self, capability: Capability) -> bool:
        predictor = self._predictors.get(capability)
        if predictor is None:
            return False
        try:
            return bool(predictor.ready())
        except Exception as exc:
            logger.warning(f"Predictor {capability.value} ready() raised: {exc}")
            return False

    def failure_count(self, capability: Capability) -> int:
        return self._failures.get(capability, 0)

    async def invoke(
        self,
        capability: Capability,
        request: Any,
        result_type: Type[R],
        coerce: Optional[Callable[[R], T]] = None,
    ) -> Optional[Any]:
        """
        Run the predictor for ``capability``.

        Returns the typed result (or ``coerce(result)`` when given), or None
        when the caller should fall back. ``coerce`` runs inside the guarded
        path: a payload it cannot convert counts as a predictor failure.
        Cancellation of the calling task is propagated.
        """
        if not self.is_ready(capability):
            return None
        predictor = self._predictors[capability]
        try:
            result = await asyncio.wait_for(
                self._call(predictor, request), timeout=self.timeout_seconds
            )
            if not isinstance(result, result_type):
                raise PredictorError(
                    capability.value,
                    f"expected {result_type.__name__}, got {type(result).__name__}",
                )
            if coerce is not None:
                return coerce(result)
            return result
        except asyncio.TimeoutError:
            err = PredictorTimeoutError(capability.value, self.timeout_seconds)
            self._record_failure(capability, err)
        except PredictorError as err:
            self._record_failure(capability, err)
        except Exception as exc:
            self._record_failure(capability, PredictorError(capability.value, f"{type(exc).__name__}: {exc}"))
        return None

    @staticmethod
    async def _call(predictor: Predictor, request: Any) -> Any:
        if inspect.iscoroutinefunction(predictor.predict):
            return await predictor.predict(request)
        result = await run_in_thread(predictor.predict, request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _record_failure(self, capability: Capability, err: PredictorError) -> None:
        self._failures[capability] = self._failures.get(capability, 0) + 1
        logger.warning(f"{err}; using fallback")

    def stats(self) -> Dict[str, Any]:
        return {
            cap.value: {
                "registered": cap in self._predictors,
                "failures": self._failures.get(cap, 0),
            }
            for cap in Capability
        }
