from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from .client import Client
from .config import CLIENT_ID_ENV, DEFAULT_TIMEOUT, ISSUER_ENV, TIMEOUT_ENV, ClientConfig
from .errors import OIDCClientError
from .models import ExchangeError, RefreshError, Tokens
from .version import __version__


def _print_json(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True))


def _load_text(text_arg: str, label: str) -> str:
    if text_arg != "-":
        return text_arg
    text = sys.stdin.read().strip()
    if not text:
        raise ValueError(f"stdin is empty; expected {label}")
    return text


def _tokens_json(tokens: Tokens) -> dict[str, Any]:
    return {"access_token": tokens.access, "refresh_token": tokens.refresh}


def _emit_result_error(err: OIDCClientError) -> int:
    print(f"error: {type(err).__name__}: {err}", file=sys.stderr)
    return 1


def _build_client(args: argparse.Namespace) -> Client:
    config = ClientConfig.from_env(
        client_id=args.client_id, issuer=args.issuer, timeout=args.timeout
    )
    return Client.from_config(config)


def _cmd_authorize(args: argparse.Namespace) -> int:
    result = _build_client(args).authorize(
        args.redirect_uri,
        args.response_type,
        pkce=args.pkce,
        provider=args.provider,
    )
    _print_json(
        {
            "url": result.url,
            "state": result.challenge.state,
            "verifier": result.challenge.verifier,
        }
    )
    return 0


def _cmd_exchange(args: argparse.Namespace) -> int:
    code = _load_text(args.code, "authorization code")
    result = _build_client(args).exchange(code, args.redirect_uri, args.verifier)
    if isinstance(result, ExchangeError):
        return _emit_result_error(result.err)
    _print_json(_tokens_json(result.tokens))
    return 0


def _cmd_refresh(args: argparse.Namespace) -> int:
    refresh_token = _load_text(args.refresh_token, "refresh token")
    result = _build_client(args).refresh(refresh_token, access=args.access)
    if isinstance(result, RefreshError):
        return _emit_result_error(result.err)
    if result.tokens is None:
        _print_json({"refreshed": False})
        return 0
    _print_json({"refreshed": True, **_tokens_json(result.tokens)})
    return 0


def _cmd_discover(args: argparse.Namespace) -> int:
    _print_json(_build_client(args).well_known().model_dump())
    return 0


def _add_client_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--issuer", help=f"Authorization server URL (default: ${ISSUER_ENV})")
    parser.add_argument("--client-id", help=f"OAuth client id (default: ${CLIENT_ID_ENV})")
    parser.add_argument(
        "--timeout",
        type=float,
        help=f"HTTP timeout in seconds (default: ${TIMEOUT_ENV} or {DEFAULT_TIMEOUT:g})",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="oidc-rp")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="warning",
        help="Log level for diagnostics on stderr (default: warning)",
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_authorize = sub.add_parser("authorize", help="Print the authorization URL to redirect to")
    _add_client_args(p_authorize)
    p_authorize.add_argument("--redirect-uri", required=True, help="Callback URL")
    p_authorize.add_argument(
        "--response-type",
        choices=["code", "token"],
        default="code",
        help="OAuth response type (default: code)",
    )
    p_authorize.add_argument(
        "--pkce", action="store_true", help="Add an S256 code challenge (code flow only)"
    )
    p_authorize.add_argument("--provider", help="Upstream identity provider hint")
    p_authorize.set_defaults(func=_cmd_authorize)

    p_exchange = sub.add_parser("exchange", help="Exchange an authorization code for tokens")
    _add_client_args(p_exchange)
    p_exchange.add_argument(
        "--code", required=True, help="Authorization code (use '-' to read from stdin)"
    )
    p_exchange.add_argument("--redirect-uri", required=True, help="Callback URL used to authorize")
    p_exchange.add_argument("--verifier", help="PKCE verifier returned by authorize")
    p_exchange.set_defaults(func=_cmd_exchange)

    p_refresh = sub.add_parser("refresh", help="Trade a refresh token for a new token pair")
    _add_client_args(p_refresh)
    p_refresh.add_argument(
        "--refresh-token", required=True, help="Refresh token (use '-' to read from stdin)"
    )
    p_refresh.add_argument(
        "--access", help="Current access token; skips the refresh while it is still valid"
    )
    p_refresh.set_defaults(func=_cmd_refresh)

    p_discover = sub.add_parser("discover", help="Print the issuer's discovery document")
    _add_client_args(p_discover)
    p_discover.set_defaults(func=_cmd_discover)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except (ValueError, OIDCClientError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
