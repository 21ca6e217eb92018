import httpx
import asyncio
import logging
from typing import Dict, List, Optional
from app.core.config import settings
from app.core.errors import AIProviderError, AIProviderTimeout, MissingApiKey

logger = logging.getLogger(__name__)

class AIService:
    """Chat-completion client for Groq's OpenAI-compatible API."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.key = api_key if api_key is not None else settings.GROQ_API_KEY
        self.model = model or settings.AI_MODEL
        self.url = settings.AI_API_URL
        self.timeout = httpx.Timeout(settings.AI_TIMEOUT_SECONDS, connect=10.0)

    def _get_headers(self):
        return {
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json"
        }

    def _model_chain(self, model: Optional[str]) -> List[str]:
        chain = [model or self.model]
        for m in settings.AI_FALLBACK_MODELS:
            if m not in chain:
                chain.append(m)
        return chain

    async def generate_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        json_mode: bool = False,
    ) -> str:
        if not self.key:
            logger.error("GROQ_API_KEY is not configured")
            raise MissingApiKey()

        model_chain = self._model_chain(model)
        logger.info(f"[AI] Attempting chain: {model_chain}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for attempt_model in model_chain:
                    payload = {
                        "model": attempt_model,
                        "messages": messages,
                        "temperature": temperature,
                        "max_tokens": max_tokens,
                    }
                    if json_mode:
                        payload["response_format"] = {"type": "json_object"}

                    resp = await client.post(self.url, headers=self._get_headers(), json=payload)

                    if resp.status_code == 200:
                        try:
                            data = resp.json()
                        except ValueError as exc:
                            logger.error(f"[AI] Non-JSON body from {attempt_model}")
                            raise AIProviderError() from exc
                        return self._extract_content(data, attempt_model)

                    if resp.status_code == 429:
                        logger.warning(f"[AI] 429 rate limit on {attempt_model}, trying next model")
                        await asyncio.sleep(1)
                        continue
                    if resp.status_code == 400 and "response_format" in resp.text:
                        logger.warning(f"[AI] {attempt_model} rejects JSON mode, trying next model")
                        continue

                    logger.error(f"[AI] {attempt_model} returned {resp.status_code}: {resp.text[:500]}")
                    raise AIProviderError()
        except httpx.TimeoutException as exc:
            logger.error(f"[AI] Request timed out: {exc}")
            raise AIProviderTimeout() from exc
        except httpx.HTTPError as exc:
            logger.error(f"[AI] Transport error: {exc}")
            raise AIProviderError() from exc

        logger.error("[AI] All models in the chain are unavailable")
        raise AIProviderError()

    @staticmethod
    def _extract_content(data: dict, model: str) -> str:
        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            logger.error(f"[AI] Empty completion from {model}: {data}")
            raise AIProviderError()
        return content

ai_service = AIService()
