import asyncio
import logging
import sys

from backend.app.db import init_models

# Drops and recreates every table - DEV MODE ONLY
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    asyncio.run(init_models(drop="--reset" in sys.argv))
    print(">>> Tables Created Successfully!")
