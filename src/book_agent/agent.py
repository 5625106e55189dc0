"""
agent.py
Book extractor agent: turns a natural-language instruction into a call of
the extractBookExcerpt tool.

When an LLM is configured, GPT plans the tool call (search query) the same
way the planner prompt does; otherwise the instruction is parsed directly.
"""

import json
import logging
from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from src.book_agent import config
from src.book_agent.catalog_client import CatalogClient
from src.book_agent.errors import ExternalAPIError
from src.book_agent.tools import (
    EXTRACT_TOOL_NAME,
    TOOL_DEFINITIONS,
    ExtractionFailure,
    get_tools_description_for_llm,
)

QUERY_PREFIX = "Find a book with: query:"

SYSTEM_PROMPT = """You are an agent that extracts excerpts from public domain books. Given a user's request, you decide which tool to call and with what parameters.

{tools_description}

INSTRUCTIONS:
1. Work out which book the user is asking for
2. Return a JSON object with a "tools" array containing exactly one call to extractBookExcerpt
3. The "searchQuery" should be a short title and/or author, not a sentence

RESPONSE FORMAT (JSON only, no markdown):
{{
  "tools": [
    {{"name": "extractBookExcerpt", "params": {{"searchQuery": "..."}}}}
  ],
  "reasoning": "Brief explanation"
}}

Examples:
- "Find a book with: query: Sherlock Holmes" → {{"tools": [{{"name": "extractBookExcerpt", "params": {{"searchQuery": "Sherlock Holmes"}}}}], "reasoning": "Direct query"}}
- "Show me something from Jane Austen's novel about the Bennet sisters" → {{"tools": [{{"name": "extractBookExcerpt", "params": {{"searchQuery": "Pride and Prejudice Austen"}}}}], "reasoning": "The Bennet sisters appear in Pride and Prejudice"}}
"""


def strip_query_prefix(instruction: str) -> str:
    """Drop the 'Find a book with: query:' prefix if present."""
    text = instruction.strip()
    if QUERY_PREFIX in text:
        text = text.replace(QUERY_PREFIX, "", 1).strip()
    return text


def parse_plan(raw_response: str) -> Dict[str, Any]:
    """Parse the LLM's JSON plan, tolerating a surrounding markdown code block."""
    raw_response = raw_response.strip()
    if raw_response.startswith("```"):
        lines = raw_response.split("\n")
        json_lines = []
        in_block = False
        for line in lines:
            if line.startswith("```"):
                in_block = not in_block
                continue
            if in_block:
                json_lines.append(line)
        raw_response = "\n".join(json_lines)

    return json.loads(raw_response)


def build_llm():
    """Create the chat model, or None when no LLM is configured."""
    if not (config.BOOK_AGENT_USE_LLM and config.OPENAI_API_KEY):
        return None
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=config.OPENAI_MODEL, temperature=0.0, api_key=config.OPENAI_API_KEY)


class BookExtractorAgent:
    """Public Domain Book Extractor agent."""

    def __init__(self, client: CatalogClient, llm=None, logger: Optional[logging.Logger] = None):
        """
        Args:
            client: Catalog client the tool uses
            llm: Optional langchain chat model used to plan the search query
            logger: Logger to use instead of the module logger
        """
        self.client = client
        self.llm = llm
        self._logger = logger or logging.getLogger(__name__)

    async def plan_query(self, instruction: str) -> str:
        """Work out the search query for an instruction."""
        fallback = strip_query_prefix(instruction)
        if self.llm is None:
            return fallback

        try:
            messages = [
                SystemMessage(content=SYSTEM_PROMPT.format(tools_description=get_tools_description_for_llm())),
                HumanMessage(content=instruction),
            ]
            response = await self.llm.ainvoke(messages)
            plan = parse_plan(response.content)

            for tool_call in plan.get("tools", []):
                if tool_call.get("name") == EXTRACT_TOOL_NAME:
                    query = (tool_call.get("params") or {}).get("searchQuery")
                    if isinstance(query, str) and query.strip():
                        self._logger.info(f"LLM planned search query {query!r}: {plan.get('reasoning', '')}")
                        return query.strip()

            self._logger.warning("LLM plan had no extractBookExcerpt call, using instruction text")
        except Exception as e:
            # Fallback to the instruction text
            self._logger.warning(f"Query planning failed, using instruction text: {e}")

        return fallback

    async def generate(self, instruction: str) -> Dict[str, Any]:
        """
        Run the agent on an instruction and return the tool result dict.

        Upstream failures propagate; anything else the tool raises (such as
        an unusable planned query) is reported as an error result.

        Raises:
            ExternalAPIError: If the catalog or download fails
        """
        query = await self.plan_query(instruction)
        tool = TOOL_DEFINITIONS[EXTRACT_TOOL_NAME]
        try:
            outcome = await tool.function(self.client, query)
        except ExternalAPIError:
            raise
        except Exception as e:
            self._logger.exception(f"{EXTRACT_TOOL_NAME} failed for {query!r}")
            outcome = ExtractionFailure.from_error(e)

        self._logger.info(f"{EXTRACT_TOOL_NAME} finished for {query!r}: {type(outcome).__name__}")
        return outcome.to_dict()
