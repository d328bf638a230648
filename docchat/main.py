"""Console entry point: serve the DocChat API with uvicorn.

Settings come from the environment (or a .env file): HOST, PORT and
LOG_LEVEL here, plus the RAG_*, EMBEDDING_* and LLM_* variables read by
the configuration models.
"""

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Send every ``docchat`` log record to stdout at ``level``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main() -> None:
    import uvicorn

    from docchat.api.app import create_app

    level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(level)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Serving DocChat on http://{host}:{port} (docs at /docs)")

    uvicorn.run(create_app(), host=host, port=port, log_level=level.lower())


if __name__ == "__main__":
    main()
