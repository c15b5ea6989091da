# fieldsurvey/agents/base.py
from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from fieldsurvey.app.config import ProviderConfig
from fieldsurvey.app.errors import AppError, LLMRequestError
from fieldsurvey.app.logging import get_logger


logger = get_logger(__name__)


class PromptNotFound(AppError):
    pass


def _read_text_file(path: Path) -> str:
    if not path.exists() or not path.is_file():
        raise PromptNotFound(f"Prompt file not found: {path}")
    return path.read_text(encoding="utf-8")


def render_prompt(template: str, variables: Dict[str, Any]) -> str:
    """
    Replaces {{ variable }} placeholders in the template with values from the dictionary.
    Handles JSON serialization for dict/list values; unknown placeholders are left as is.
    """
    def repl(match: re.Match[str]) -> str:
        key = match.group(1).strip()
        if key not in variables:
            return match.group(0)
        v = variables[key]
        if isinstance(v, (dict, list)):
            return json.dumps(v, ensure_ascii=False, indent=2)
        return str(v)

    return re.sub(r"\{\{\s*([a-zA-Z0-9_\.]+)\s*\}\}", repl, template)


def get_llm(provider: ProviderConfig) -> ChatOpenAI:
    """
    Creates a chat client for the configured provider.
    The credential check happens here, before any request can be sent.
    """
    api_key = provider.require_api_key()
    return ChatOpenAI(
        model=provider.model,
        temperature=provider.temperature,
        api_key=api_key,
        base_url=provider.base_url,
        timeout=provider.timeout_seconds,
        max_retries=0,
    )


class BaseAgent:
    """
    Base for agents that send one system prompt plus one user message to a chat model
    and post-process the raw text reply.
    """

    name: str = "base_agent"
    prompt_file: Optional[str] = None
    default_prompt: str = ""

    def __init__(self, provider: ProviderConfig, llm: Any = None, prompts_dir: Optional[str] = None):
        self.provider = provider
        self.prompts_dir = Path(prompts_dir) if prompts_dir else None
        # A preconfigured chat model (or test double) can be injected.
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = get_llm(self.provider)
        return self._llm

    def complete(self, system_prompt: str, user_message: str) -> str:
        # Credential check first; no request is attempted without a key.
        self.provider.require_api_key()

        messages: List[BaseMessage] = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_message),
        ]
        try:
            ai_msg = self.llm.invoke(messages)
        except AppError:
            raise
        except Exception as e:
            logger.error("LLM request failed", extra={"agent": self.name, "provider": self.provider.provider})
            raise LLMRequestError(self.provider.display_name, str(e)) from e

        content = getattr(ai_msg, "content", ai_msg)
        if isinstance(content, list):
            # Some providers return content blocks instead of a single string.
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        if not isinstance(content, str) or not content.strip():
            raise LLMRequestError(self.provider.display_name, f"Failed to parse {self.provider.display_name} response")
        return content

    # -------------------------
    # Prompt helpers
    # -------------------------
    def _build_variables(self) -> Dict[str, Any]:
        return {}

    def _load_prompt_template(self) -> str:
        if self.prompt_file and self.prompts_dir is not None:
            path = self.prompts_dir / self.prompt_file
            if path.exists():
                return _read_text_file(path)

        if self.default_prompt.strip():
            return self.default_prompt

        raise PromptNotFound(f"No prompt_file/default_prompt defined for agent '{self.name}'.")

    def _build_prompt(self) -> str:
        template = self._load_prompt_template()
        return render_prompt(template, self._build_variables())
