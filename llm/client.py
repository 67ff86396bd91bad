"""
OpenAI client using direct REST API calls.
Sends the categorization prompt and returns the assistant's raw text.
"""
import json
import time
from typing import Any, Dict, Optional

import requests
import urllib3

from core.config import Settings, get_settings
from core.exceptions import ConfigurationError, LLMError, MalformedResponseError
from core.logger import setup_logger

logger = setup_logger(__name__)


def extract_message_content(completion_data: Dict[str, Any]) -> Optional[str]:
    """
    Find the assistant text in a completion payload.
    Handles the chat-completions `choices` envelope and the responses `output` envelope.

    Args:
        completion_data: Parsed response body

    Returns:
        Assistant text or None if absent
    """
    content = None

    if "choices" in completion_data:
        try:
            content = completion_data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            pass

    if not content and "output" in completion_data:
        for item in completion_data["output"] or []:
            if item.get("type") == "message" and item.get("role") == "assistant":
                for content_item in item.get("content", []):
                    if content_item.get("type") == "output_text":
                        content = content_item.get("text")
                        break
            if content:
                break

    return content


class OpenAIClientWrapper:
    """Wrapper for the OpenAI chat-completions REST API."""

    def __init__(self, settings: Optional[Settings] = None):
        """Initialize REST API client."""
        settings = settings or get_settings()
        if not settings.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY environment variable not set",
                details={"required_key": "OPENAI_API_KEY"}
            )

        self.api_url = settings.openai_api_url
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model
        self.timeout = settings.request_timeout
        self.json_mode = settings.openai_json_mode
        self.verify_ssl = settings.verify_ssl

        if not self.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        logger.info(f"Initialized OpenAI REST client with model: {self.model}, endpoint: {self.api_url}")

    def build_payload(self, prompt: str, system_prompt: Optional[str], temperature: float) -> Dict[str, Any]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
        }
        if self.json_mode:
            payload["response_format"] = {"type": "json_object"}

        # Reasoning models reject a temperature parameter
        if not self.model.lower().startswith(("gpt-5", "o1", "o3", "o4")):
            payload["temperature"] = temperature

        return payload

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.1,
    ) -> str:
        """
        Send a prompt and return the assistant's text.

        Args:
            prompt: User prompt
            system_prompt: Optional system instruction
            temperature: Model temperature (0.0-1.0)

        Returns:
            Raw assistant text, possibly wrapped in markdown or prose

        Raises:
            LLMError: If the API is unreachable or reports an error
            MalformedResponseError: If the reply carries no content
        """
        payload = self.build_payload(prompt, system_prompt, temperature)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}"
        }

        started = time.monotonic()
        response = None
        try:
            response = requests.post(
                self.api_url,
                headers=headers,
                data=json.dumps(payload),
                verify=self.verify_ssl,
                timeout=self.timeout
            )
            response.raise_for_status()
            completion_data = response.json()

        except requests.exceptions.Timeout as e:
            logger.error(f"AI request timeout after {self.timeout}s: {e}")
            raise LLMError(
                f"AI request timeout after {self.timeout}s",
                details={"api_url": self.api_url, "timeout": self.timeout}
            )

        except requests.exceptions.HTTPError as e:
            logger.error(f"AI API HTTP error: {e}")
            raise LLMError(
                f"AI API returned HTTP error: {e}",
                details={
                    "api_url": self.api_url,
                    "status_code": getattr(e.response, "status_code", None),
                    "response_text": getattr(e.response, "text", None),
                }
            )

        except ValueError as e:
            # requests raises errors that are both ValueError and RequestException
            if response is None:
                logger.error(f"Invalid AI API request: {e}")
                raise LLMError(
                    f"Invalid AI API request: {e}",
                    details={"api_url": self.api_url}
                )
            logger.error(f"Failed to parse AI API response as JSON: {e}")
            raise LLMError(
                f"AI API returned invalid JSON: {e}",
                details={"raw_response": response.text[:500]}
            )

        except requests.exceptions.RequestException as e:
            logger.error(f"AI request failed: {e}")
            raise LLMError(
                f"Failed to connect to AI API: {str(e)}",
                details={"api_url": self.api_url, "error": str(e)}
            )

        if not isinstance(completion_data, dict):
            raise LLMError("AI API returned an unexpected payload")

        if "error" in completion_data:
            raise LLMError(
                f"AI API reported an error: {completion_data['error']}",
                details={"api_url": self.api_url}
            )

        content = extract_message_content(completion_data)
        if not content or not content.strip():
            logger.error(f"Response keys: {list(completion_data.keys())}")
            raise MalformedResponseError(
                "AI response contained no content",
                details={"model": self.model}
            )

        elapsed = time.monotonic() - started
        usage = completion_data.get("usage") or {}
        logger.info(
            f"AI call completed in {elapsed:.1f}s "
            f"(input tokens: {usage.get('prompt_tokens', 'N/A')}, "
            f"output tokens: {usage.get('completion_tokens', 'N/A')})"
        )
        return content


# Singleton client instance
_client: Optional[OpenAIClientWrapper] = None


def get_client(settings: Optional[Settings] = None) -> OpenAIClientWrapper:
    """
    Get or create OpenAI client singleton.

    Returns:
        OpenAI client wrapper instance
    """
    global _client
    if _client is None:
        _client = OpenAIClientWrapper(settings)
    return _client


def reset_client() -> None:
    """Reset client singleton (useful for testing)."""
    global _client
    _client = None
