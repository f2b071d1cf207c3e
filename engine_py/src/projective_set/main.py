"""FastAPI main application for the Projective Set backend"""

import logging

from .config import load_config
from .ws.server import create_app

config = load_config()

# Configure logging
logging.basicConfig(
    level=config.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = create_app(config)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.host, port=config.port)
