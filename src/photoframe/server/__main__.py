"""
Entry point for: python -m photoframe.server

Runs the upload server with Flask's development server.
"""

import argparse

from photoframe.common.config import get_config
from photoframe.server.app import create_app


def main():
    parser = argparse.ArgumentParser(description="Photo frame upload server")
    parser.add_argument('--config', help="YAML config file path")
    parser.add_argument('--host', help="Bind address")
    parser.add_argument('--port', type=int, help="Port")
    args = parser.parse_args()

    config = get_config(args.config)
    app = create_app(config)
    app.run(
        host=args.host or config.get('server.host', '0.0.0.0'),
        port=args.port or config.get('server.port', 3000)
    )


if __name__ == "__main__":
    main()
