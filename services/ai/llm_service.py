# services/ai/llm_service.py
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from typing import Optional, Protocol


# ============================================================================
# PUBLIC INTERFACE
# ============================================================================

class LLMClient(Protocol):
    async def generate_json(self, *, system: str, user: str) -> str:
        """Return raw text that should be JSON."""


class LLMConfigError(RuntimeError):
    """Raised when the report model is not configured (e.g. missing API key)."""


@dataclass
class LLMConfig:
    temperature: float = 0.3
    timeout_s: float = 180.0

    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-pro"

    @staticmethod
    def from_env() -> "LLMConfig":
        return LLMConfig(
            temperature=float(os.getenv("AI_TEMPERATURE", "0.3")),
            timeout_s=float(os.getenv("GEMINI_TIMEOUT_S", "180")),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            gemini_model=os.getenv("GEMINI_MODEL") or "gemini-2.5-pro",
        )


# ============================================================================
# PROVIDER CLIENT
# ============================================================================

class GeminiClient:
    def __init__(self, api_key: str, model: str, *, temperature: float = 0.3):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature

    async def generate_json(self, *, system: str, user: str) -> str:
        # google-genai SDK is sync; run in thread.
        return await asyncio.to_thread(self._sync_call, system, user)

    def _sync_call(self, system: str, user: str) -> str:
        from google import genai
        from google.genai import types

        client = genai.Client(api_key=self.api_key)

        combined = f"{system}\n\n{user}"
        contents = [
            types.Content(
                role="user",
                parts=[types.Part.from_text(text=combined)]
            )
        ]
        config = types.GenerateContentConfig(
            temperature=self.temperature,
            response_mime_type="application/json",
        )

        resp = client.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        return resp.text if getattr(resp, "text", None) else str(resp)


# ============================================================================
# LLM SERVICE
# ============================================================================

class LLMService:
    def __init__(self, cfg: Optional[LLMConfig] = None, client: Optional[LLMClient] = None):
        self.cfg = cfg or LLMConfig.from_env()
        self.client: LLMClient = client or self._resolve_client(self.cfg)

    def _resolve_client(self, cfg: LLMConfig) -> LLMClient:
        if not cfg.gemini_api_key:
            raise LLMConfigError("Missing GEMINI_API_KEY")
        return GeminiClient(
            api_key=cfg.gemini_api_key,
            model=cfg.gemini_model,
            temperature=cfg.temperature,
        )

    async def generate_text(self, *, system: str, user: str) -> str:
        """Raw model text, bounded by the configured timeout."""
        try:
            return await asyncio.wait_for(
                self.client.generate_json(system=system, user=user),
                timeout=self.cfg.timeout_s,
            )
        except asyncio.TimeoutError as exc:
            raise RuntimeError(f"LLM call timed out after {self.cfg.timeout_s:.0f}s") from exc


_llm_singleton: Optional[LLMService] = None

def get_llm_service() -> LLMService:
    global _llm_singleton
    if _llm_singleton is None:
        _llm_singleton = LLMService()
    return _llm_singleton
