from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from config.llm_routes import ROUTES
from config.settings import get_settings
from services.errors import ProviderError
from utils.call_trace import sha256_text, trace_call


SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _coerce(resp: Any, schema: Type[SchemaT]) -> SchemaT:
    """Validate whatever the SDK handed back against ``schema``."""
    if isinstance(resp, schema):
        return resp
    if hasattr(resp, "model_dump"):
        return schema.model_validate(resp.model_dump())
    if isinstance(resp, dict):
        return schema.model_validate(resp)
    if isinstance(resp, str):
        return schema.model_validate_json(resp)
    raise ProviderError(f"Unexpected structured response type: {type(resp).__name__}")


class LLMClient:
    """Gateway for internet-grounded structured search and chat classification.

    Routes per use case through config.llm_routes and traces every call.
    Implements WebSearchPort and LLMClientPort.
    """

    max_attempts = 2
    backoff_ms = 300

    def __init__(self) -> None:
        self.settings = get_settings()

    def structured_search(self, *, use_case: str, query: str, schema: Type[SchemaT]) -> SchemaT:
        route = ROUTES.get(use_case, {})
        provider = (route.get("provider") or self.settings.ai_provider or "linkup").lower()
        depth = route.get("depth", "standard")
        op = route.get("operation", use_case)
        caller = f"llm_client.structured_search:{use_case}"

        if provider != "linkup":
            raise ProviderError(f"Provider not implemented for structured search: {provider}")
        api_key = self.settings.linkup_api_key
        if not api_key:
            trace_call(caller=caller, provider=provider, operation=op, status="error", error="LINKUP_API_KEY missing")
            raise ProviderError("LINKUP_API_KEY missing")

        from linkup import LinkupClient

        client = LinkupClient(api_key=api_key)
        last_err: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            t0 = time.time()
            try:
                resp = client.search(
                    query=query,
                    depth=depth,
                    output_type="structured",
                    structured_output_schema=schema,
                )
                result = _coerce(resp, schema)
                trace_call(
                    caller=caller,
                    provider=provider,
                    operation=op,
                    request_hash=sha256_text(query),
                    duration_ms=int((time.time() - t0) * 1000),
                )
                return result
            except ValidationError as e:
                # A malformed shape will not fix itself on retry
                trace_call(caller=caller, provider=provider, operation=op, request_hash=sha256_text(query), status="error", error=str(e))
                raise ProviderError(f"{use_case}: response failed schema validation") from e
            except Exception as e:
                last_err = e
                trace_call(
                    caller=caller,
                    provider=provider,
                    operation=op,
                    request_hash=sha256_text(query),
                    duration_ms=int((time.time() - t0) * 1000),
                    status="error",
                    error=str(e),
                    extras={"attempt": attempt},
                )
                if attempt < self.max_attempts:
                    time.sleep(self.backoff_ms / 1000.0)
        raise ProviderError(f"{use_case}: search failed after {self.max_attempts} attempts: {last_err}") from last_err

    def chat(self, *, use_case: str, messages: List[Dict[str, str]], temperature: Optional[float] = None, prompt_name: Optional[str] = None, prompt_text: Optional[str] = None) -> Any:
        route = ROUTES.get(use_case, {})
        provider = route.get("provider", "openai")
        model = route.get("model") or self.settings.openai_model or "gpt-4o-mini"
        op = route.get("operation", "chat")
        temp = temperature if temperature is not None else route.get("temperature")

        if provider != "openai":
            raise NotImplementedError(f"Provider not implemented: {provider}")

        from openai import OpenAI
        client = OpenAI(api_key=self.settings.openai_api_key)

        t0 = time.time()
        kwargs: Dict[str, Any] = {"model": model, "messages": messages}
        # Only pass temperature if explicitly provided (some models only accept default)
        if temp is not None:
            kwargs["temperature"] = temp
        try:
            resp = client.chat.completions.create(**kwargs)
        except Exception as e:
            trace_call(
                caller=f"llm_client.chat:{use_case}",
                provider=provider,
                operation=op,
                request_hash=sha256_text(prompt_text),
                duration_ms=int((time.time() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise ProviderError(f"{use_case}: chat completion failed: {e}") from e

        usage = getattr(resp, "usage", None)
        trace_call(
            caller=f"llm_client.chat:{use_case}",
            provider=provider,
            operation=op,
            request_hash=sha256_text(prompt_text),
            duration_ms=int((time.time() - t0) * 1000),
            extras={
                "model": model,
                "prompt_name": prompt_name,
                "total_tokens": getattr(usage, "total_tokens", None) if usage else None,
            },
        )
        return resp
