from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel


SchemaT = TypeVar("SchemaT", bound=BaseModel)


class WebSearchPort(Protocol):
    def structured_search(self, *, use_case: str, query: str, schema: Type[SchemaT]) -> SchemaT:
        """Internet-grounded search whose answer is constrained to ``schema``.

        Raises on provider failure; callers decide how to degrade.
        """
        ...


class LLMClientPort(WebSearchPort, Protocol):
    def chat(
        self,
        *,
        use_case: str,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        prompt_name: Optional[str] = None,
        prompt_text: Optional[str] = None,
    ) -> Any:
        ...
