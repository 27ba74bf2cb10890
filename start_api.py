"""
Start the Narrative Refresher cron API
"""
import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

from enricher.utils.logger import setup_logging  # noqa: E402

setup_logging()

from enricher.api.app import app  # noqa: E402,F401

if __name__ == "__main__":
    uvicorn.run(
        "start_api:app",
        host=os.getenv("API_HOST", "0.0.0.0"),
        port=int(os.getenv("API_PORT", "8000")),
        log_level="info"
    )
