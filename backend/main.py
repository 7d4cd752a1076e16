# backend/main.py
# Local development server: python -m backend.main [--host H] [--port P]
import argparse

import uvicorn

from backend.app.core.config import settings


def main():
    parser = argparse.ArgumentParser(description=f"Run the {settings.PROJECT_NAME} API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "backend.app.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
