"""
SafeRoute Safety Backend — FastAPI
Modular entry point. All logic is split across:
  config.py, models.py, crime_generator.py, crime_data.py, environment.py,
  location.py, scoring.py, cache.py, routes.py
"""

import logging

from config import LOG_LEVEL

logging.basicConfig(level=LOG_LEVEL)

# Import the FastAPI app from routes (the dataset is built on startup)
from routes import app  # noqa: F401,E402

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
