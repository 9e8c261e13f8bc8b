import argparse
import logging
import sys
import asyncio
from cargomap.mcp_server.server import server
from cargomap.core.config import load_config


def main():
    parser = argparse.ArgumentParser(
        description="cargomap MCP Server - Rust architecture analysis over stdio",
        epilog="Example: python -m cargomap.mcp_server --project-root ./my-crate"
    )
    parser.add_argument(
        "--config",
        help="Path to configuration YAML file (default: cargomap.config.yaml)"
    )
    parser.add_argument(
        "--project-root",
        dest="project_root",
        help="Rust project to analyze (default: current directory)"
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        help="Logging level (default: INFO)"
    )

    args = parser.parse_args()

    cli_args = {k: v for k, v in vars(args).items() if v is not None and k != "config"}
    config = load_config(config_path=args.config, cli_args=cli_args)

    logging.basicConfig(level=config.log_level.upper(), stream=sys.stderr)

    server.config = config

    logging.info(f"Server starting with config: {config.model_dump()}")
    logging.info("Server running on stdio")
    try:
        asyncio.run(server.run_stdio_async())
    except KeyboardInterrupt:
        logging.info("Server stopped")


if __name__ == "__main__":
    main()
