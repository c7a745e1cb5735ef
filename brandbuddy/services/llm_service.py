"""
LLM Service for AI-Powered Insights
Sends prompts to an OpenAI-compatible chat-completions endpoint
"""
import asyncio
import json
import re
from typing import Any, Dict, List, Optional

import aiohttp

from brandbuddy.config import get_settings
from brandbuddy.utils.logger import log

settings = get_settings()

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_code_fences(content: str) -> str:
    """Models sometimes wrap JSON in ```json fences"""
    return _FENCE_RE.sub("", content.strip()).strip()


def parse_json_content(content: Optional[str]) -> Optional[Any]:
    """Parse a model reply as JSON, or None when it is not JSON"""
    if not content:
        return None
    try:
        return json.loads(strip_code_fences(content))
    except (json.JSONDecodeError, ValueError) as e:
        log.warning(f"LLM reply was not valid JSON: {str(e)}")
        return None


class LLMService:
    """
    Service for generating insight text through the chat-completions API.

    Every public method returns None when the service is disabled or the
    call fails; callers fall back to their rule-based output.
    """

    def __init__(self):
        self.api_key = settings.openai_api_key
        self.api_url = settings.openai_api_url
        self.timeout = settings.llm_timeout_seconds
        self.enabled = bool(settings.enable_llm_insights and self.api_key)

        if self.enabled:
            log.info(f"LLM Service initialized ({settings.ai_model_fast} / {settings.ai_model_advanced})")
        else:
            log.info("LLM insights disabled (no API key or feature disabled)")

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        max_tokens: int = 1000,
        temperature: float = 0.2
    ) -> Optional[str]:
        """Send a chat request and return the first choice's content"""
        if not self.enabled:
            return None

        payload = {
            "model": model or settings.ai_model_fast,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(self.api_url, json=payload, headers=headers) as response:
                    if response.status != 200:
                        log.error(f"LLM request failed: HTTP {response.status}")
                        return None
                    data = await response.json(content_type=None)

            content = data["choices"][0]["message"]["content"]
            log.info(f"LLM reply received ({payload['model']}, {len(content or '')} chars)")
            return content

        except asyncio.TimeoutError:
            log.error(f"LLM request timed out after {self.timeout:.0f}s")
            return None
        except (aiohttp.ClientError, json.JSONDecodeError, ValueError) as e:
            log.error(f"Error calling LLM: {str(e)}")
            return None
        except (KeyError, IndexError, TypeError) as e:
            log.error(f"Unexpected LLM response shape: {str(e)}")
            return None

    async def complete(self, prompt: str, system: Optional[str] = None, **kwargs) -> Optional[str]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return await self.chat(messages, **kwargs)

    async def complete_json(self, prompt: str, system: Optional[str] = None, **kwargs) -> Optional[Any]:
        """Like complete() but parses the reply as JSON"""
        content = await self.complete(prompt, system=system, **kwargs)
        return parse_json_content(content)
