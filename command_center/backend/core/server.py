"""Server runner."""

import logging

import uvicorn

from command_center.backend.core.app import create_app
from command_center.backend.core.config import ServiceConfiguration


def run_server(args):
    """Run the API server in the foreground.

    Args:
        args: Parsed command-line arguments
    """
    config = ServiceConfiguration.from_env(
        api_key=getattr(args, "api_key", None),
        connections_file=getattr(args, "connections_file", None),
        sync_concurrency=getattr(args, "sync_concurrency", None),
        poll_interval=getattr(args, "poll_interval", None),
    )
    app = create_app(config=config)

    ssl_certfile = getattr(args, "ssl_certfile", None)
    ssl_keyfile = getattr(args, "ssl_keyfile", None)
    protocol = "https" if (ssl_certfile and ssl_keyfile) else "http"

    logging.info("🚀 Starting Command Center")
    logging.info(f"📊 API: {protocol}://{args.host}:{args.port}/api")
    logging.info(f"🔧 API docs: {protocol}://{args.host}:{args.port}/docs")
    if ssl_certfile and ssl_keyfile:
        logging.info(f"🔒 HTTPS enabled (cert: {ssl_certfile})")

    try:
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level=args.log_level,
            ssl_certfile=ssl_certfile,
            ssl_keyfile=ssl_keyfile,
        )
    except KeyboardInterrupt:
        logging.info("👋 Command Center stopped")
