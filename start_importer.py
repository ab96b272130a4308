"""
Avvio server winenode-importer (uvicorn).
"""
import logging

import uvicorn
from dotenv import load_dotenv

# .env prima di leggere la configurazione
load_dotenv()

from core.config import get_config
from core.logger import setup_colored_logging

setup_colored_logging("importer")
logger = logging.getLogger(__name__)


def main():
    config = get_config()
    host = "0.0.0.0"

    logger.info(f"Avvio {config.importer_name} {config.importer_version} su {host}:{config.port}")
    # Workflow di conferma in memoria: un solo worker
    uvicorn.run(
        "api.main:app",
        host=host,
        port=config.port,
        workers=1,
        reload=False,
        log_level="info",
        access_log=True,
        use_colors=False,
    )


if __name__ == "__main__":
    main()
