#!/usr/bin/env python3
"""
Quick runner for the FIR Service
================================

Usage:
    python -m fir_backend.run
    # or
    python fir_backend/run.py
"""

import uvicorn

if __name__ == "__main__":
    print("Starting FIR Service...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "fir_backend.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
