#!/usr/bin/env python3
"""
Development server runner for SkillBadge Backend.
"""

import os

import uvicorn
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("DEBUG", "true").lower() == "true"
    log_level = os.getenv("LOG_LEVEL", "info").lower()
    network = os.getenv("BLOCKCHAIN_NETWORK", "amoy")
    signer = "configured" if os.getenv("BLOCKCHAIN_PRIVATE_KEY") else "none (simulation mode)"

    print(f"Starting SkillBadge Backend on {host}:{port}")
    print(f"Network: {network}, signer: {signer}")
    print(f"API docs available at: http://{host}:{port}/docs")

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        access_log=True
    )
