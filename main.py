"""
Multi-source VOD Scraper API
API pour parcourir les catalogues et résoudre les flux vidéo de plusieurs sources
"""

import logging
from typing import List, Optional, Any
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from config import SITES_CONFIG, API_CONFIG, LOG_CONFIG
from vodscraper import BaseSource, build_default_registry

log = structlog.get_logger(__name__)

# ==================== LOGGING ====================

def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog (console lisible ou JSON)"""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        cache_logger_on_first_use=True,
    )

# ==================== MODÈLES PYDANTIC ====================

class SourceInfo(BaseModel):
    name: str
    site_name: str
    base_url: str
    supports_home: bool = False
    categories: List[str] = []
    years: List[str] = []

class ApiResponse(BaseModel):
    success: bool
    message: str = ""
    data: Any = None
    sources_used: List[str] = []

# ==================== REGISTRE DES SOURCES ====================

registry = build_default_registry(SITES_CONFIG)


def get_source(name: str) -> BaseSource:
    """Retourne la source ou lève une 400 si elle n'est pas enregistrée"""
    source = registry.get(name)
    if source is None:
        raise HTTPException(status_code=400, detail=f"Source '{name}' non supportée. Sources: {registry.names()}")
    return source

# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestion du cycle de vie de l'application"""
    configure_logging(LOG_CONFIG["level"], LOG_CONFIG["json"])
    log.info("api_started", sources=registry.names())
    yield
    log.info("api_stopped")

# ==================== APP FASTAPI ====================

app = FastAPI(
    title="Multi-source VOD Scraper API",
    description="""
    API pour agréger catalogues, épisodes et flux vidéo depuis plusieurs sites.

    ## Sources supportées:
    - **Age** - agedm.io (catalogue, détails, accueil, flux Vurl/iframe)
    - **Yhmc** - yhmc.cc (catalogue par catégorie/année, détails, accueil, flux chiffrés)

    ## Fonctionnalités:
    - 📋 Catalogue paginé (filtres par libellé lisible)
    - 📺 Lignes de lecture (miroirs) et épisodes
    - 🎞️ Résolution des flux (native ou iframe, avec en-têtes requis)
    - 🏠 Sections de la page d'accueil
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ==================== ENDPOINTS ====================

@app.get("/", tags=["Root"])
async def root():
    """Page d'accueil de l'API"""
    return {
        "name": "Multi-source VOD Scraper API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "sources": "/api/sources",
            "catalog": "/api/catalog/{source}?page={page}&category={category}&year={year}",
            "detail": "/api/detail/{source}/{source_id}",
            "video": "/api/video/{source}?url={play_url}",
            "home": "/api/home/{source}",
            "health": "/health"
        },
        "sources_available": registry.names()
    }

@app.get("/health", tags=["Health"])
async def health_check():
    """Vérification de l'état de l'API"""
    return {
        "status": "healthy",
        "sources": len(registry),
        "version": "1.0.0"
    }

@app.get("/api/sources", tags=["Sources"], response_model=List[SourceInfo])
async def list_sources():
    """Liste les sources enregistrées et leurs capacités"""
    return [
        SourceInfo(
            name=source.name,
            site_name=source.site_name,
            base_url=source.base_url,
            supports_home=source.supports_home,
            categories=source.categories,
            years=source.years,
        )
        for source in registry
    ]

@app.get("/api/catalog/{source}", tags=["Catalog"], response_model=ApiResponse)
async def get_catalog(
    source: str,
    page: int = Query(default=1, ge=1, description="Numéro de page (commence à 1)"),
    category: Optional[str] = Query(default=None, description="Catégorie (ex: 日韩动漫)"),
    year: Optional[str] = Query(default=None, description="Année (ex: 2025, 10年代)")
):
    """
    Parcourt une page du catalogue

    - **source**: Nom de la source (Age, Yhmc)
    - **page**: Numéro de page
    - **category** / **year**: Libellés lisibles, valeur par défaut si inconnus
    """
    scraper = get_source(source)
    items = await scraper.scrape_catalog(page, category=category, year=year)

    return ApiResponse(
        success=len(items) > 0,
        message=f"{len(items)} titres trouvés" if items else "Aucun résultat",
        data=[item.to_dict() for item in items],
        sources_used=[source]
    )

@app.get("/api/detail/{source}/{source_id:path}", tags=["Details"], response_model=ApiResponse)
async def get_detail(source: str, source_id: str):
    """
    Récupère les lignes de lecture et les métadonnées d'un titre

    - **source**: Nom de la source
    - **source_id**: Identifiant du titre sur le site d'origine
    """
    scraper = get_source(source)
    bundle = await scraper.scrape_detail(source_id)

    return ApiResponse(
        success=len(bundle.playlists) > 0,
        message=f"{len(bundle.playlists)} lignes trouvées" if bundle.playlists else "Aucune ligne de lecture",
        data=bundle.to_dict(),
        sources_used=[source]
    )

@app.get("/api/video/{source}", tags=["Video"], response_model=ApiResponse)
async def get_video(
    source: str,
    url: str = Query(..., min_length=1, description="URL de la page de lecture")
):
    """
    Résout l'adresse réelle du flux d'un épisode

    En cas d'échec, essayer une autre ligne (miroir).
    """
    scraper = get_source(source)
    video = await scraper.scrape_video(url)

    if video is None:
        return ApiResponse(
            success=False,
            message="Lecture indisponible, essayez une autre ligne",
            data=None,
            sources_used=[source]
        )

    return ApiResponse(
        success=True,
        message=f"Flux {video.type.value} résolu",
        data=video.to_dict(),
        sources_used=[source]
    )

@app.get("/api/home/{source}", tags=["Home"], response_model=ApiResponse)
async def get_home(source: str):
    """Récupère les sections de la page d'accueil (si supporté par la source)"""
    scraper = get_source(source)
    if not scraper.supports_home:
        raise HTTPException(status_code=400, detail=f"La source {source} ne supporte pas la page d'accueil")

    sections = await scraper.scrape_home()

    return ApiResponse(
        success=len(sections) > 0,
        message=f"{len(sections)} sections" if sections else "Aucune section",
        data=[section.to_dict() for section in sections],
        sources_used=[source]
    )

# ==================== POINT D'ENTRÉE ====================

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=API_CONFIG["host"],
        port=API_CONFIG["port"],
        reload=API_CONFIG["debug"]
    )
