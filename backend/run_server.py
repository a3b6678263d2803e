"""Simple server runner that keeps uvicorn alive."""
import logging
import signal
import sys

import uvicorn

from medbill.core.config import settings

logger = logging.getLogger("run_server")


def handle_signal(sig, frame):
    logger.info(f"Received signal {sig}, shutting down gracefully...")
    sys.exit(0)


signal.signal(signal.SIGINT, handle_signal)
signal.signal(signal.SIGTERM, handle_signal)

if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    logger.info("Starting MedBill backend")
    uvicorn.run(
        "medbill.main:app",
        host="127.0.0.1",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )
