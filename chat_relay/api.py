"""FastAPI entry point for the completion relay."""

from __future__ import annotations

import argparse
import logging
from typing import AsyncIterator, Iterator, Optional

import anyio
import uvicorn
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse

from .config import DEFAULT_SYSTEM_PROMPT, RelayConfig, RelayLLMConfig
from .errors import MalformedRequest
from .framing import MEDIA_TYPE, STREAM_HEADER
from .llm_client import EchoLLMClient
from .service import CompletionRelay
from .utils import setup_logging

logger = logging.getLogger(__name__)


async def _relay_frames(request: Request, frames: Iterator[str]) -> AsyncIterator[str]:
    """Pull frames one at a time, stopping as soon as the caller goes away."""
    try:
        while True:
            if await request.is_disconnected():
                logger.info("Client disconnected; closing upstream stream")
                break
            frame = await run_in_threadpool(next, frames, None)
            if frame is None:
                break
            yield frame
    finally:
        with anyio.CancelScope(shield=True):
            try:
                await run_in_threadpool(frames.close)
            except ValueError:
                # Still running in the threadpool; the relay deadline ends it.
                logger.warning("Relay stream still executing at disconnect; leaving it to its deadline")


def create_app(
    relay_config: Optional[RelayConfig] = None,
    *,
    client: Optional[object] = None,
    log_dir: Optional[str] = None,
) -> FastAPI:
    if log_dir:
        setup_logging(log_dir, logging.INFO)

    relay = CompletionRelay(relay_config, client=client)

    app = FastAPI(title="Chat Relay", version="0.1.0")
    app.state.relay = relay

    @app.exception_handler(MalformedRequest)
    async def malformed_request(request: Request, exc: MalformedRequest) -> JSONResponse:
        logger.warning("Rejected malformed chat request: %s", exc.message)
        return JSONResponse(status_code=400, content={"error": exc.kind, "detail": exc.message})

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/api/chat")
    async def chat(request: Request):
        try:
            payload = await request.json()
        except ValueError as exc:
            raise MalformedRequest("request body is not valid JSON") from exc

        messages = app.state.relay.parse_messages(payload)
        frames = app.state.relay.stream(messages)
        return StreamingResponse(
            _relay_frames(request, frames),
            media_type=MEDIA_TYPE,
            headers=dict([STREAM_HEADER]),
        )

    return app


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the chat relay with streaming responses.")
    parser.add_argument("--host", default="127.0.0.1", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8004, help="Port to bind.")
    parser.add_argument("--log_dir", help="Directory for application logs.")
    parser.add_argument(
        "--llm_endpoint",
        default=RelayLLMConfig.endpoint,
        help="OpenAI-compatible chat-completions endpoint.",
    )
    parser.add_argument("--llm_model", default=RelayLLMConfig.model, help="Model name for completions.")
    parser.add_argument("--request_timeout", type=int, default=60, help="Timeout for LLM calls (seconds).")
    parser.add_argument(
        "--max_duration", type=float, default=30.0, help="Wall-clock ceiling for one relayed reply (seconds)."
    )
    parser.add_argument("--system_prompt", default=DEFAULT_SYSTEM_PROMPT, help="System instruction sent first.")
    parser.add_argument("--echo", action="store_true", help="Use the offline echo model instead of the API.")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> RelayConfig:
    return RelayConfig(
        llm=RelayLLMConfig.from_env(
            endpoint=args.llm_endpoint,
            model=args.llm_model,
            request_timeout=args.request_timeout,
        ),
        system_prompt=args.system_prompt,
        max_duration_seconds=args.max_duration,
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_dir, logging.INFO)
    relay_cfg = config_from_args(args)

    client = EchoLLMClient() if args.echo else None
    if client is None and not relay_cfg.llm.api_key:
        logger.warning("No model credential found in the environment; upstream calls will likely fail")

    app = create_app(relay_cfg, client=client)
    logger.info("Starting chat relay on %s:%d (model=%s)", args.host, args.port, relay_cfg.llm.model)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
