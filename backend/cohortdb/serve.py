"""
Run the cohort API under uvicorn.

Environment variables supply the defaults; command-line flags override them:

    cohortdb-serve --port 9000 --reload
"""

import argparse
import logging
import os
from typing import Dict, List, Optional

import uvicorn

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _tls_options(certfile: Optional[str], keyfile: Optional[str]) -> Dict[str, str]:
    if bool(certfile) != bool(keyfile):
        raise SystemExit("TLS needs both SSL_CERTFILE and SSL_KEYFILE")
    if not certfile:
        return {}
    return {"ssl_certfile": certfile, "ssl_keyfile": keyfile}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Serve the cohort compliance API.")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() in _TRUTHY,
    )
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info").lower())
    parser.add_argument("--certfile", default=os.getenv("SSL_CERTFILE"))
    parser.add_argument("--keyfile", default=os.getenv("SSL_KEYFILE"))
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    tls = _tls_options(args.certfile, args.keyfile)
    logger.info(
        "Starting cohort API on %s:%d (reload=%s, tls=%s)",
        args.host,
        args.port,
        args.reload,
        bool(tls),
    )
    uvicorn.run(
        "cohortdb.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **tls,
    )


if __name__ == "__main__":
    main()
