"""
Run chatfeed locally with auto-reload

    python start_server.py [--host 0.0.0.0] [--port 8000]
"""
import argparse

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="chatfeed development server")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--no-reload", action="store_true")
    args = parser.parse_args()

    try:
        uvicorn.run(
            "chatfeed.main:app",
            host=args.host,
            port=args.port,
            reload=not args.no_reload,
            log_level="info",
        )
    except KeyboardInterrupt:
        print("\nServer stopped")


if __name__ == "__main__":
    main()
