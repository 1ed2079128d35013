"""Order sync service entry point."""

import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)


def main():
    """Run the order sync service."""
    from order_sync.config.settings import settings

    reload = os.getenv("RELOAD", "false").lower() == "true"

    uvicorn.run(
        "order_sync.server.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
