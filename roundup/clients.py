"""
Model clients.

Every generator and the researcher talk to a ``ModelClient``: one
``complete`` call for JSON or plain-text generation and one
``deep_research`` call for the web-search-backed research pass.

Two backends are provided:

* ``OpenRouterClient`` — OpenAI-compatible chat completions over httpx.
* ``AnthropicClient`` — Anthropic Messages API with the web_search tool.

Clients make exactly one request per call. Retrying is the caller's job
(see ``roundup.retry``), so both backends surface failures as
``ModelAPIError`` with the status code and body in the message.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Protocol

import httpx

from roundup.parsing import RoundupError

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

APP_TITLE = "Platform Roundup"
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search", "max_uses": 5}

_JSON_SYSTEM = "Return only valid JSON, no commentary, no markdown fences."


class ModelAPIError(RoundupError):
    """An upstream model API returned an error or could not be reached."""


@dataclass
class ResearchReply:
    """Result of one deep-research call."""

    content: str
    #: Opaque reasoning trace, echoed back on follow-up calls when present.
    reasoning_details: Any = None
    #: URLs the backend itself reports as visited; empty when it reports none.
    citations: list[str] = field(default_factory=list)


class ModelClient(Protocol):
    """Interface shared by both backends.

    ``schema`` is a JSON Schema for replies with a fixed shape; backends
    hand it to the provider's structured-output mode. Without one,
    ``json_mode`` only asks for some JSON object.
    """

    def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        json_mode: bool = True,
        schema: Optional[dict[str, Any]] = None,
    ) -> str: ...

    def deep_research(
        self,
        messages: list[dict[str, Any]],
        *,
        model: Optional[str] = None,
    ) -> ResearchReply: ...


# ── OpenRouter ─────────────────────────────────────────────────────────────


class OpenRouterClient:
    """Chat-completions client for OpenRouter.

    The httpx client is lazy-initialised; pass ``http_client`` to inject a
    client with a mock transport in tests.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings
        self._http = http_client

    @property
    def http(self) -> httpx.Client:
        if self._http is None:
            self._http = httpx.Client(
                base_url=self.settings.openrouter_base_url,
                timeout=self.settings.request_timeout,
            )
        return self._http

    def _post(self, body: dict[str, Any], title: str) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.settings.openrouter_api_key}",
            "Content-Type": "application/json",
            "X-Title": title,
        }
        try:
            response = self.http.post("/chat/completions", json=body, headers=headers)
        except httpx.TimeoutException as exc:
            raise ModelAPIError(f"Network error: request timed out ({exc})") from exc
        except httpx.TransportError as exc:
            raise ModelAPIError(f"Network error: {type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise ModelAPIError(
                f"OpenRouter API error: {response.status_code} - {response.text}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ModelAPIError(
                f"OpenRouter API error: invalid JSON body {response.text!r:.300}"
            ) from exc

    @staticmethod
    def _first_message(result: dict[str, Any]) -> dict[str, Any]:
        try:
            return result["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ModelAPIError(f"OpenRouter API error: unexpected response shape {result!r:.300}") from exc

    def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        json_mode: bool = True,
        schema: Optional[dict[str, Any]] = None,
    ) -> str:
        body: dict[str, Any] = {
            "model": model or self.settings.content_model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode and schema:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "roundup_output", "strict": True, "schema": schema},
            }
        elif json_mode:
            body["response_format"] = {"type": "json_object"}

        result = self._post(body, f"{APP_TITLE} - Content")
        return self._first_message(result).get("content") or ""

    def deep_research(
        self,
        messages: list[dict[str, Any]],
        *,
        model: Optional[str] = None,
    ) -> ResearchReply:
        research_model = model or self.settings.research_model
        body: dict[str, Any] = {"model": research_model, "messages": messages}
        if "sonar" in research_model.lower():
            body["web_search_options"] = {
                "search_context_size": "high",
                "search_recency_filter": "month",
            }
        else:
            body["reasoning"] = {"enabled": True}

        result = self._post(body, f"{APP_TITLE} - Research")
        message = self._first_message(result)
        citations = message.get("citations") or result.get("citations") or []
        return ResearchReply(
            content=message.get("content") or "",
            reasoning_details=message.get("reasoning_details"),
            citations=[str(c) for c in citations],
        )


# ── Anthropic ──────────────────────────────────────────────────────────────


class AnthropicClient:
    """Messages API client.

    OpenRouter-style model ids (``openai/gpt-4o-mini``) have no meaning here,
    so any non-Claude model name resolves to ``settings.anthropic_model``.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            # SDK retries are off; roundup.retry owns the backoff policy.
            self._client = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key,
                max_retries=0,
                timeout=self.settings.request_timeout,
            )
        return self._client

    def _resolve_model(self, model: Optional[str]) -> str:
        if model and model.startswith("claude"):
            return model
        return self.settings.anthropic_model

    def _create(self, **kwargs: Any) -> Any:
        import anthropic

        try:
            return self.client.messages.create(**kwargs)
        except anthropic.APIStatusError as exc:
            raise ModelAPIError(
                f"Anthropic API error: {exc.status_code} - {exc.message}"
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise ModelAPIError(f"Network error: {exc}") from exc

    def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        json_mode: bool = True,
        schema: Optional[dict[str, Any]] = None,
    ) -> str:
        kwargs: dict[str, Any] = {
            "model": self._resolve_model(model),
            "max_tokens": 8000,
            "messages": [{"role": "user", "content": prompt}],
        }
        if json_mode:
            kwargs["system"] = _JSON_SYSTEM
        if json_mode and schema:
            kwargs["output_config"] = {"format": {"type": "json_schema", "schema": schema}}
        response = self._create(**kwargs)
        return _joined_text(response)

    def deep_research(
        self,
        messages: list[dict[str, Any]],
        *,
        model: Optional[str] = None,
    ) -> ResearchReply:
        # reasoning_details is an OpenRouter field; the Messages API rejects it.
        cleaned = [{"role": m["role"], "content": m["content"]} for m in messages]
        response = self._create(
            model=self._resolve_model(model),
            max_tokens=8000,
            tools=[WEB_SEARCH_TOOL],
            messages=cleaned,
        )

        urls: list[str] = []
        for block in getattr(response, "content", []) or []:
            if getattr(block, "type", None) != "web_search_tool_result":
                continue
            for result in getattr(block, "content", []) or []:
                url = getattr(result, "url", "") or ""
                if getattr(result, "type", None) == "web_search_result" and url and url not in urls:
                    urls.append(url)

        return ResearchReply(content=_joined_text(response), citations=urls)


def _joined_text(response: Any) -> str:
    return "".join(
        getattr(block, "text", "") or ""
        for block in getattr(response, "content", []) or []
        if getattr(block, "type", None) == "text"
    )


def build_client(settings: Settings) -> ModelClient:
    """Return the client for ``settings.model_backend``."""
    if settings.model_backend == "anthropic":
        logger.info("Using Anthropic backend (model=%s)", settings.anthropic_model)
        return AnthropicClient(settings)
    logger.info("Using OpenRouter backend (research=%s, content=%s)",
                settings.research_model, settings.content_model)
    return OpenRouterClient(settings)
