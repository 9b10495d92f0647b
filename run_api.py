"""Run the green rewards API server."""
import os
import signal
import sys

import uvicorn
from dotenv import load_dotenv

from green_rewards.api.app import shutdown_event
from green_rewards.utils.logging_config import setup_logging

# Load environment variables from .env file
load_dotenv()


def signal_handler(sig, frame):
    """Close the engine (pending reward notifications, DB pool) and exit."""
    print(f"\nReceived signal {sig}, shutting down green rewards API...")
    shutdown_event()
    sys.exit(0)


def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    log_level = os.getenv('LOG_LEVEL', 'INFO')
    setup_logging(log_level=log_level)

    host = os.getenv('HOST', '0.0.0.0')
    port = int(os.getenv('PORT', '8000'))
    # Auto-reload is for local development only
    reload = os.getenv('RELOAD', 'false').lower() in ('1', 'true', 'yes')

    try:
        uvicorn.run("green_rewards.api.app:app", host=host, port=port, reload=reload, log_level=log_level.lower())
    except Exception as e:
        print(f"Green rewards API failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
