"""
Copy Proxy - server-side handler between the plugin and the LLM provider.

Keeps the provider API key off the designer's machine: the agent posts a
RequestPayload, the proxy checks the shared bearer secret, renders the user
message around the fixed SYSTEM_PROMPT and returns ``{"text": ...}``.
"""

import os
import logging
from typing import Any, Dict, Optional

import litellm
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from copy_payload import GenerateResponse, RequestPayload
from system_prompt import SYSTEM_PROMPT

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
TEMPERATURE = 0.2
MAX_TOKENS = 500


def build_user_message(payload: RequestPayload) -> str:
    return f"""
PROJECT CONTEXT:
{payload.project_context or 'No project context provided.'}

TARGET AUDIENCE:
{payload.audience or 'Not specified (default to Learner tone)'}

UI ELEMENT:
{payload.element_context or 'No element context available.'}

SURROUNDING COPY NEAR THE SELECTED TEXT:
{payload.surrounding_copy_context or 'No nearby copy detected.'}

RECENT GENERATION HISTORY (newest first):
{payload.generation_history or 'No previous generations stored.'}

CURRENT TEXT (if any):
{payload.current_text or '(No existing text)'}

USER REQUEST:
{payload.user_request}
""".strip()


def _bearer_token(request: Request) -> str:
    header = request.headers.get("Authorization") or ""
    return header.replace("Bearer ", "", 1)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


async def complete_copy(payload: RequestPayload, model: str, api_key: Optional[str]) -> str:
    """Ask the chat-completion API for copy and return the stripped first choice."""
    kwargs: Dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_message(payload)},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
    }
    if api_key:
        kwargs["api_key"] = api_key
    completion = await litellm.acompletion(**kwargs)
    try:
        content = completion.choices[0].message.content
    except (AttributeError, IndexError):
        content = None
    return (content or "").strip()


def create_app() -> FastAPI:
    app = FastAPI(title="figma-copy-assistant proxy", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        allow_credentials=False,
    )

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "model": os.getenv("LITELLM_MODEL", DEFAULT_MODEL),
            "auth_required": bool(os.getenv("PLUGIN_API_SECRET")),
        }

    @app.post("/api/generate")
    async def generate(request: Request):
        expected_secret = os.getenv("PLUGIN_API_SECRET")
        if expected_secret and _bearer_token(request) != expected_secret:
            logger.warning("🔒 Rejected request with invalid plugin secret")
            return _error(401, "Unauthorized")

        try:
            payload = RequestPayload.model_validate(await request.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"⚠️ Invalid request body: {e}")
            return _error(400, "Invalid request body")

        if not payload.user_request:
            return _error(400, "Missing user request")

        model = os.getenv("LITELLM_MODEL", DEFAULT_MODEL)
        logger.info(f"💬 Generating copy with {model} (request={len(payload.user_request)} chars)")
        try:
            text = await complete_copy(payload, model, os.getenv("LITELLM_API_KEY"))
        except Exception as e:
            logger.error(f"❌ Generation error: {e}")
            return _error(500, str(e) or "Generation failed")

        logger.info(f"✨ Generated {len(text)} chars")
        return GenerateResponse(text=text).model_dump()

    return app


app = create_app()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format='[%(asctime)s] [proxy] [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%S'
    )
    host = os.getenv("COPY_PROXY_HOST", "127.0.0.1")
    port = int(os.getenv("COPY_PROXY_PORT", "3000"))
    logger.info(f"Starting copy proxy on {host}:{port}")
    logger.info(f"LiteLLM Model: {os.getenv('LITELLM_MODEL', DEFAULT_MODEL)}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
