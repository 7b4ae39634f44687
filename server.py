"""
memnet - persistent memory entries and user-defined tools for AI agents.

Runs the FastAPI app (health, service info, MCP at /mcp) under uvicorn, or
the MCP stdio transport with ``--stdio``.
"""

import argparse
import os

import uvicorn

import memnet.config as config


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description=config.SERVICE_DESCRIPTION)
    parser.add_argument("--stdio", action="store_true", help="serve MCP over stdio instead of HTTP")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "8080")))
    options = parser.parse_args(argv)

    if options.stdio:
        from memnet.db import close_db, init_db
        from memnet.mcp import mcp

        init_db()
        try:
            mcp.run()
        finally:
            close_db()
        return

    config.logger.info("memnet starting...")
    uvicorn.run("app.main:asgi_app", host=options.host, port=options.port)


if __name__ == "__main__":
    main()
