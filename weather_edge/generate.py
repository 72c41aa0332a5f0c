"""
Short-copy generation behind /api/generate.

Unlike the weather endpoint, failures here surface as HTTP status codes:
400 for a missing prompt, 500 for missing credentials or upstream errors.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from .clients import CompletionClient
from .errors import ConfigurationError
from .schemas import GenerateMeta, GenerateResponse

logger = logging.getLogger(__name__)

MISSING_PROMPT = "请输入关键词"
MISSING_KEY = "未配置API Key，请在Pages控制台设置环境变量"
EMPTY_REPLY = "未生成有效内容"


def build_prompt(prompt: str) -> str:
    return f"用{prompt}生成一句简短文案，不超过20字，无多余内容"


class GenerationService:
    def __init__(self, completion: CompletionClient):
        self.completion = completion

    async def generate(self, prompt: Optional[str], debug: bool = False) -> Tuple[int, GenerateResponse]:
        """Returns (http_status, body)."""
        prompt = (prompt or "").strip()
        if not prompt:
            return 400, GenerateResponse(content=MISSING_PROMPT)

        res = await self.completion.chat([{"role": "user", "content": build_prompt(prompt)}])

        if res.ok:
            reply = res.value
            body = GenerateResponse(content=reply.content.strip() or EMPTY_REPLY)
            if debug:
                body.meta = GenerateMeta(
                    ok=True,
                    status=reply.status,
                    latency_ms=reply.latency_ms,
                    endpoint=self.completion.endpoint,
                    input_len=len(prompt),
                    raw_sample=reply.raw_sample,
                )
            return 200, body

        error = res.error
        if isinstance(error, ConfigurationError):
            body = GenerateResponse(content=MISSING_KEY)
        else:
            logger.warning("generation failed: %s", error)
            body = GenerateResponse(content=f"生成失败：{error}")
        if debug:
            body.meta = GenerateMeta(
                ok=False,
                status=error.status_code,
                endpoint=self.completion.endpoint,
                input_len=len(prompt),
                raw_sample=error.raw_sample,
            )
        return 500, body
