"""Client for the hosted code-generation model (Cloudflare Workers AI REST API)."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

import config
from errors import ModelError

logger = logging.getLogger(__name__)


@dataclass
class ModelResult:
    """Text reply plus token usage reported by the model."""
    response: str
    usage: Dict[str, Any] = field(default_factory=dict)


class ModelClient:
    """Runs chat-style prompts against one Workers AI model.

    No retries: a failed call surfaces as ModelError to the caller.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_token: str = config.CF_API_TOKEN,
        timeout: int = config.MODEL_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """Initialize the client.

        Args:
            endpoint: Full run URL (defaults to the configured account/model)
            api_token: Workers AI API token
            timeout: HTTP request timeout in seconds
            session: Optional requests session (for connection reuse)
        """
        self.endpoint = endpoint or config.get_model_endpoint()
        self.api_token = api_token
        self.timeout = timeout
        self.session = session or requests.Session()

    def run(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int,
        temperature: Optional[float] = None
    ) -> ModelResult:
        """Send messages to the model.

        Args:
            messages: [{"role": ..., "content": ...}, ...]
            max_tokens: Completion token budget
            temperature: Sampling temperature (model default when None)

        Returns:
            ModelResult with the reply text and usage

        Raises:
            ModelError: On transport errors, non-2xx responses or success=false
        """
        body: Dict[str, Any] = {"messages": messages, "max_tokens": max_tokens}
        if temperature is not None:
            body["temperature"] = temperature

        try:
            response = self.session.post(
                self.endpoint,
                json=body,
                headers={"Authorization": f"Bearer {self.api_token}"},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Model request failed: {e}")
            raise ModelError(f"Model request failed: {e}") from e
        except ValueError as e:
            logger.error(f"Model returned non-JSON body: {e}")
            raise ModelError("Model returned an invalid response") from e

        if not data.get("success", True):
            logger.error(f"Model reported errors: {data.get('errors')}")
            raise ModelError(f"Model reported errors: {data.get('errors')}")

        result = data.get("result") or {}
        text = result.get("response")
        if text is None:
            raise ModelError("Model response is missing the reply text")

        logger.info(f"Model replied with {len(text)} chars ({len(messages)} messages in)")
        return ModelResult(response=text, usage=result.get("usage") or {})


# Global instance (lazy-loaded)
_model_client: Optional[ModelClient] = None


def get_model_client() -> ModelClient:
    """Get or create the global ModelClient."""
    global _model_client
    if _model_client is None:
        _model_client = ModelClient()
    return _model_client
