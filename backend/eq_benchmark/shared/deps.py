# eq_benchmark/shared/deps.py
"""
Dépendances FastAPI réutilisables dans tous les routers.
Injectées via Depends(), jamais appelées directement.
"""
from typing import Annotated, Optional
from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eq_benchmark.core.database import get_db


async def get_filters(
    country:      Optional[str] = Query(None),
    region:       Optional[str] = Query(None),
    sector:       Optional[str] = Query(None),
    job_function: Optional[str] = Query(None),
    job_role:     Optional[str] = Query(None),
    age_range:    Optional[str] = Query(None),
    gender:       Optional[str] = Query(None),
    education:    Optional[str] = Query(None),
    source_id:    Optional[str] = Query(None),
) -> dict:
    """Filtres démographiques en query string → dict brut (validé par FilterSpec)."""
    return {
        "country": country,
        "region": region,
        "sector": sector,
        "job_function": job_function,
        "job_role": job_role,
        "age_range": age_range,
        "gender": gender,
        "education": education,
        "source_id": source_id,
    }


# ── Type aliases pour les routers ─────────────────────────
DbDep      = Annotated[AsyncSession, Depends(get_db)]
FiltersDep = Annotated[dict, Depends(get_filters)]
