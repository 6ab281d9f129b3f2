# main.py
"""
Point d'entrée de l'API EQ Benchmark.
Enregistre les modules via leurs routers.

Architecture : modules verticaux (router / service / repository / schemas)
+ engine transversal pur (engine/benchmarking, aucun accès DB).
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from eq_benchmark.core.config import settings
from eq_benchmark.core.logging_config import configure_logging

from eq_benchmark.modules.benchmark.router import router as benchmark_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(benchmark_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
