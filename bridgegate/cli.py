"""
命令行入口：解析参数、合并环境变量配置、启动 uvicorn。

用法：
  export BRIDGEGATE_PROVIDER_TOKEN=<上游 API key>
  bridgegate                                  # 默认 Z.AI，监听 127.0.0.1:9000
  bridgegate --provider xai                   # X.AI，监听 127.0.0.1:9001
  bridgegate --provider custom --base-url https://llm.example.com/v1 --provider-name Example
  BRIDGEGATE_PROXY_AUTH_TOKEN=<token> bridgegate --auth-required

凭据只从环境变量读取，避免出现在进程列表中。
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Sequence

import uvicorn

from bridgegate.config.providers import provider_choices, resolve_provider
from bridgegate.config.settings import Settings, load_settings
from bridgegate.core.gateway import create_app
from bridgegate.util.logger import configure, logger
from bridgegate.util.masking import mask_for_log

PROVIDER_TOKEN_ENV = "BRIDGEGATE_PROVIDER_TOKEN"
PROXY_AUTH_TOKEN_ENV = "BRIDGEGATE_PROXY_AUTH_TOKEN"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bridgegate",
        description="Serve a /v1/messages endpoint backed by an OpenAI-compatible chat/completions provider.",
    )
    parser.add_argument(
        "--provider",
        default=None,
        help=(
            f"Backend preset: {', '.join(provider_choices())} (case-insensitive, '-'/'_' ignored); "
            "'custom' takes --base-url/--provider-name (default: from environment, else zai)"
        ),
    )
    parser.add_argument("--provider-name", default=None, help="Display name used in logs and error messages")
    parser.add_argument("--base-url", default=None, help="Backend base URL, /chat/completions is appended")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    parser.add_argument(
        "--auth-required",
        action="store_true",
        default=None,
        help=f"Require 'Authorization: Bearer <token>' matching ${PROXY_AUTH_TOKEN_ENV}",
    )
    parser.add_argument("--log-level", default=None, help="critical|error|warning|info|debug")
    parser.add_argument("-v", "--verbose", action="store_true", help="Shortcut for --log-level debug")
    return parser


def resolve_config(args: argparse.Namespace, base: Settings | None = None) -> Settings:
    """Merge CLI flags over the environment-derived settings.

    Raises ValueError (pydantic ValidationError included) for unusable values.
    """

    base = base or load_settings()
    update: dict[str, Any] = {}

    if args.provider:
        preset = resolve_provider(args.provider)
        if preset is not None:
            update["provider_name"] = preset.display_name
            update["base_url"] = preset.base_url
            # 端口已由环境变量或 --port 指定时不覆盖
            if "port" not in base.model_fields_set:
                update["port"] = preset.default_port
        elif not args.base_url:
            raise ValueError("--provider custom requires --base-url")

    if args.provider_name:
        update["provider_name"] = args.provider_name
    if args.base_url:
        update["base_url"] = args.base_url
    if args.host:
        update["host"] = args.host
    if args.port is not None:
        update["port"] = args.port
    if args.auth_required:
        update["auth_required"] = True
    if args.verbose:
        update["log_level"] = "debug"
    elif args.log_level:
        update["log_level"] = args.log_level

    merged = base.model_dump()
    merged.update(update)
    return Settings.model_validate(merged)


def _log_startup(config: Settings) -> None:
    logger.info("%s listening on %s:%s", config.app_name, config.host, config.port)
    logger.info("  provider=%s base_url=%s", config.provider_name, config.base_url)
    logger.info("  provider_token=%s", mask_for_log(config.provider_token))
    if config.auth_required:
        logger.info("  proxy auth enabled token=%s", mask_for_log(config.proxy_auth_token))


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = resolve_config(args)
    except ValueError as exc:
        logger.error("invalid configuration: %s", exc)
        return 2

    configure(config.log_level, config.log_file)

    if not config.provider_token:
        logger.error("backend credential missing: set %s", PROVIDER_TOKEN_ENV)
        return 1
    if config.auth_required and not config.proxy_auth_token:
        logger.warning("auth required but %s is empty; proxy auth stays disabled", PROXY_AUTH_TOKEN_ENV)

    try:
        app = create_app(config)
    except ValueError as exc:
        logger.error("invalid backend base url=%s error=%s", config.base_url, exc)
        return 2

    _log_startup(config)
    # uvicorn 处理 SIGINT/SIGTERM：停止接收新连接，在宽限期内等待进行中的请求完成
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=False,
        server_header=False,
        timeout_graceful_shutdown=config.shutdown_grace_seconds,
    )
    logger.info("%s stopped", config.app_name)
    return 0


if __name__ == "__main__":
    sys.exit(main())
