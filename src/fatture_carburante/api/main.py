"""
@file main.py
@brief Entry point FastAPI.
@ingroup api_module
"""

from __future__ import annotations
from fastapi import FastAPI
from fatture_carburante.config import configure_logging
from .routes import router

configure_logging()

app = FastAPI(title="Fatture Carburante API", version="0.1.0")
app.include_router(router)
