"""Application FastAPI — point d'entrée du backend API."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from syscohada_ledger.config.loader import load_config
from syscohada_ledger.engine import (
    BankReconciler,
    JournalService,
    LedgerAggregator,
    LettrageMatcher,
    SequenceAllocator,
    StatementBuilder,
)
from syscohada_ledger.store import InMemoryLedgerStore

from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Charge la configuration YAML et instancie le stockage et les services au démarrage."""
    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    config = load_config(config_dir)
    store = InMemoryLedgerStore()
    sequence = SequenceAllocator(store, config)

    state = application.state
    state.config = config
    state.store = store
    state.sequence = sequence
    state.journal = JournalService(store, config, sequence)
    state.aggregator = LedgerAggregator(store, config)
    state.statements = StatementBuilder(store, config)
    state.lettrage = LettrageMatcher(store, config)
    state.reconciler = BankReconciler(store, config)
    logger.info("Configuration chargée depuis %s", config_dir)
    yield


app = FastAPI(
    title="syscohada-ledger API",
    description="API REST de tenue comptable SYSCOHADA : écritures, lettrage, rapprochement, états financiers.",
    lifespan=lifespan,
)

# CORS
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["POST", "GET", "DELETE"],
    allow_headers=["*"],
)

app.include_router(router)
