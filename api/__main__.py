"""Command line interface for running the API server."""
import asyncio
import errno
import logging
import socket
from typing import Optional

import uvicorn

from config import settings_conf
from database import init_db, close as db_close

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def port_is_free(host: str, port: int) -> bool:
    """Check whether ``port`` can be bound on ``host``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                return False
            raise
    return True

def find_available_port(host: str, port: int, attempts: int) -> int:
    """Return the first free port at or above ``port``.

    Raises:
        RuntimeError: If no port is free within ``attempts`` tries
    """
    for candidate in range(port, port + attempts):
        if port_is_free(host, candidate):
            return candidate
        logger.info(f"Port {candidate} is busy, trying {candidate + 1}...")
    raise RuntimeError(f"No free port in {port}-{port + attempts - 1}")

class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 5000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level="info",
            # Large uploads need a generous keep-alive
            timeout_keep_alive=30 * 60
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Serve until uvicorn receives a shutdown signal."""
        await self.server.serve()

async def main(port: Optional[int] = None):
    """Initialize the database and run the API server."""
    try:
        logger.info("Initializing database...")
        await init_db()

        host = settings_conf['host']
        port = find_available_port(
            host,
            port or settings_conf['port'],
            settings_conf['port_search_limit']
        )

        # uvicorn installs its own SIGINT/SIGTERM handlers
        server = UvicornServer(host=host, port=port)

        logger.info(f"Server running on port {port}")
        await server.run()

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        logger.info("Closing database connections...")
        await db_close()
        logger.info("Cleanup complete.")

if __name__ == "__main__":
    asyncio.run(main())
