#!/usr/bin/env python3
"""
Standalone runner for the BOQ rate fill server.
Same as `python main.py serve`, kept for deployments that start the backend folder directly.
"""

import os
import sys
import argparse
import logging
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from main import setup_logging


def print_routes(flask_app):
    """Print every API route registered on the Flask app"""
    print("📝 Available API endpoints:")
    for rule in sorted(flask_app.url_map.iter_rules(), key=lambda r: r.rule):
        if not rule.rule.startswith('/api/'):
            continue
        methods = ','.join(sorted(m for m in rule.methods if m not in ('HEAD', 'OPTIONS')))
        print(f"   {methods:<6} {rule.rule}")


def main():
    parser = argparse.ArgumentParser(description='BOQ Rate Fill Server')
    parser.add_argument('--port', type=int, default=5000, help='Port to run the server on')
    parser.add_argument('--host', type=str, default='localhost', help='Host to run the server on')
    parser.add_argument('--config', type=str, default=None, help='Path to the configuration JSON file')
    parser.add_argument('--storage', type=str, default=None, help='Folder for uploads and filled files')
    parser.add_argument('--debug', action='store_true', help='Run in debug mode')
    args = parser.parse_args()

    setup_logging(args.debug)

    from backend.app import App

    processor = App(config_file_path=args.config, storage_root=args.storage)
    print("🚀 Starting BOQ Rate Fill Server")
    print(f"📂 Uploads: {processor.upload_folder}")
    print(f"📂 Output:  {processor.output_folder}")
    print_routes(processor.app)

    # Use 0.0.0.0 for Docker compatibility, localhost for local dev
    host = "0.0.0.0" if os.getenv('FLASK_ENV') == 'production' else args.host
    logging.getLogger('backend').info(f"Binding to {host}:{args.port}")
    processor.run(host=host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
