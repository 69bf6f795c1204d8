"""
Language Oracle

Thin wrapper around a LangChain chat model used by every orchestration call
site (decomposition, escalation decisions, routing, synthesis, specialists).

Every call is bounded by ``asyncio.wait_for``; a timeout or any model error is
raised as OracleError. ``structured_call`` is the single place where an oracle
call, its decoding and its fallback are combined, so call sites only supply a
prompt, a decoder and a fallback.

Usage:
    ```python
    oracle = LanguageOracle(model_name="gpt-4o-mini", timeout=30)

    plan = await oracle.structured_call(
        prompt,
        decoder=extract_json_object,
        fallback=lambda: {"subtasks": []},
        label="decomposition",
    )
    ```
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar, Union

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from ..exceptions import OracleError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LanguageOracle:
    """
    Async facade over a chat model with timeouts and fallbacks.

    Attributes:
        llm: LangChain chat model (ChatOpenAI unless one is injected)
        timeout: Seconds allowed per call
    """

    def __init__(
        self,
        llm: Optional[Any] = None,
        model_name: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 60.0,
    ):
        self.llm = llm if llm is not None else ChatOpenAI(model=model_name, temperature=temperature)
        self.timeout = timeout

    @staticmethod
    def _build_messages(prompt: str, system_prompt: Optional[str]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        if system_prompt:
            messages.append(SystemMessage(content=system_prompt))
        messages.append(HumanMessage(content=prompt))
        return messages

    async def _invoke(self, runnable: Any, messages: List[BaseMessage], label: str) -> Any:
        try:
            return await asyncio.wait_for(runnable.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OracleError(f"{label} timed out after {self.timeout}s") from e
        except Exception as e:
            raise OracleError(f"{label} failed: {e}") from e

    async def complete(self, prompt: str, system_prompt: Optional[str] = None, label: str = "completion") -> str:
        """
        Send a prompt and return the response text.

        Raises:
            OracleError: On model failure or timeout
        """
        response = await self._invoke(self.llm, self._build_messages(prompt, system_prompt), label)
        content = getattr(response, "content", response)
        if isinstance(content, list):
            # Content blocks: keep the text parts
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block) for block in content
            )
        return str(content)

    async def decide(
        self,
        prompt: str,
        schema: Type[BaseModel],
        system_prompt: Optional[str] = None,
        label: str = "decision",
    ) -> Optional[Dict[str, Any]]:
        """
        Ask the model to answer through a constrained decision tool.

        Args:
            prompt: Decision prompt
            schema: Pydantic model bound as the only tool

        Returns:
            The tool call arguments, or None if the model made no matching call

        Raises:
            OracleError: On model failure or timeout
        """
        try:
            bound = self.llm.bind_tools([schema], tool_choice=schema.__name__)
        except Exception as e:
            raise OracleError(f"{label}: could not bind decision tool: {e}") from e

        response = await self._invoke(bound, self._build_messages(prompt, system_prompt), label)
        for call in getattr(response, "tool_calls", None) or []:
            if call.get("name") == schema.__name__:
                return dict(call.get("args") or {})
        return None

    async def structured_call(
        self,
        prompt: str,
        decoder: Callable[[str], T],
        fallback: Union[T, Callable[[], T]],
        label: str = "structured_call",
        system_prompt: Optional[str] = None,
    ) -> T:
        """
        Call the model, decode its answer, and fall back on any failure.

        Args:
            prompt: Prompt text
            decoder: Turns response text into the expected shape; raises on bad shape
            fallback: Value, or zero-argument callable producing the value, used when
                the call or the decoding fails
            label: Call site name for logs

        Returns:
            Decoded value or the fallback. Never raises.
        """
        try:
            content = await self.complete(prompt, system_prompt=system_prompt, label=label)
            return decoder(content)
        except OracleError as e:
            logger.error(f"[Oracle] {label}: {e}. Using fallback")
        except Exception as e:
            logger.warning(f"[Oracle] {label}: malformed response ({type(e).__name__}: {e}). Using fallback")
        return fallback() if callable(fallback) else fallback
