#!/usr/bin/env python3
"""Startup script for the Projective Set backend"""

import uvicorn

from .config import load_config


def main():
    config = load_config()

    print(f"Starting Projective Set backend on {config.host}:{config.port}")
    print(f"Health check available at: http://{config.host}:{config.port}/health")
    print(f"WebSocket endpoint: ws://{config.host}:{config.port}/ws")

    uvicorn.run(
        "projective_set.main:app",
        host=config.host,
        port=config.port,
        reload=config.reload,
        log_level=config.log_level.lower()
    )


if __name__ == "__main__":
    main()
