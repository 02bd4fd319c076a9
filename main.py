#!/usr/bin/env python3
"""
Main entry point for the GeoQuery API.
Handles server startup with environment-based configuration.
"""
import uvicorn
from geoquery.config import APP_PORT, APP_ENV

if __name__ == "__main__":
    print(f"🚀 Starting GeoQuery API on port {APP_PORT}")
    uvicorn.run(
        "geoquery.api:app",
        host="0.0.0.0",
        port=APP_PORT,
        reload=APP_ENV == "development",
        log_level="info"
    )
