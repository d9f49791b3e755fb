"""
Command line entry point: `python -m onemin_gateway` or `onemin-gateway`
"""

import argparse

import uvicorn

from onemin_gateway.config import get_settings


def main() -> None:
    settings = get_settings()
    parser = argparse.ArgumentParser(description=settings.APP_NAME)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    uvicorn.run(
        "onemin_gateway.main:app",
        host=args.host,
        port=args.port,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
