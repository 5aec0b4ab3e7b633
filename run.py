#!/usr/bin/env python3
"""
Writory dev launcher.

- Local dev:     ./run.py --env development
- No reloader:   ./run.py --env development --no-reload
- Production:    use `gunicorn wsgi:app` instead
"""

from __future__ import annotations

import argparse
import logging
import os
import socket


def _port_in_use(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.settimeout(0.3)
        return s.connect_ex((host if host != "0.0.0.0" else "127.0.0.1", port)) == 0


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Run the Writory Flask app.")
    p.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))
    p.add_argument("--env", choices=["development", "testing", "production"], default=os.getenv("APP_ENV", "development"))
    p.add_argument("--no-reload", action="store_true", help="Disable the Werkzeug reloader.")
    p.add_argument("--force", dest="force_run", action="store_true", help="Start even if the port looks busy.")
    p.add_argument("--routes", action="store_true", help="Print the URL map and exit.")
    return p.parse_args()


def main() -> None:
    args = parse_args()
    os.environ["APP_ENV"] = args.env

    from writory import create_app

    app = create_app(args.env)

    if args.routes:
        for rule in sorted(app.url_map.iter_rules(), key=lambda r: r.rule):
            methods = ",".join(sorted(m for m in rule.methods if m not in {"HEAD", "OPTIONS"}))
            print(f"{methods:<18} {rule.rule:<50} {rule.endpoint}")
        return

    if not args.force_run and _port_in_use(args.host, args.port):
        logging.error("Port %s already in use (host=%s). Stop the other process or use --force.", args.port, args.host)
        raise SystemExit(2)

    debug = args.env != "production"
    app.run(host=args.host, port=args.port, debug=debug, use_reloader=debug and not args.no_reload)


if __name__ == "__main__":
    main()
