import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import SystemMessage, HumanMessage
from langchain_openai import ChatOpenAI

from geoquery.config import OPENAI_API_KEY, OPENAI_MODEL, REASONING_TEMPERATURE
from geoquery.errors import UnknownExecutorError
from geoquery.prompts.phase_prompts import ROLE_PROMPTS, RolePrompt

logger = logging.getLogger("reasoning_executor")


class ReasoningExecutor(ABC):
    """A generative reasoning service with one behaviour per executor role."""

    @abstractmethod
    async def invoke(self, role: str, prompt: str) -> Any:
        """Run the role on the prompt; returns text or a structured object."""


class LangChainReasoningExecutor(ReasoningExecutor):
    """
    Reasoning executor backed by a LangChain chat model.

    Each role gets its own system prompt; the phase prompt is sent as the
    human message and the model's raw content is returned for boundary
    parsing. The OpenAI model is created on first use so that importing the
    engine does not require an API key.
    """

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        role_prompts: Optional[Dict[str, RolePrompt]] = None
    ):
        self._llm = llm
        self.role_prompts = dict(ROLE_PROMPTS if role_prompts is None else role_prompts)

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = ChatOpenAI(
                model=OPENAI_MODEL,
                temperature=REASONING_TEMPERATURE,
                api_key=OPENAI_API_KEY
            )
        return self._llm

    async def invoke(self, role: str, prompt: str) -> Any:
        role_prompt = self.role_prompts.get(role)
        if role_prompt is None:
            raise UnknownExecutorError(role)

        messages = [
            SystemMessage(content=role_prompt.get_system_prompt()),
            HumanMessage(content=prompt)
        ]

        logger.info(f"Invoking {role} ({len(prompt)} chars)")
        response = await self.llm.ainvoke(messages)
        logger.debug(f"{role} returned {len(str(response.content))} chars")

        return response.content
