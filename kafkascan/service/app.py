"""FastAPI application entrypoint for kafkascan service mode."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..catalog import PatternCatalog, load_catalog
from ..errors import CatalogError, ConfigError, ScanRootError
from ..export import catalog_summary, report_to_dict
from ..models import ScanReport
from ..orchestrator import Orchestrator


class ScanRequest(BaseModel):
    path: str
    scope: Optional[str] = None
    workers: Optional[int] = Field(default=None, ge=1)


class ProducerSummary(BaseModel):
    call_site: str
    topic: str
    category: str
    serializer: Optional[str] = None


class ScanResponse(BaseModel):
    root: str
    catalog_version: str
    cancelled: bool
    producers: List[ProducerSummary]
    consumer_count: int
    warning_count: int
    report: Dict[str, Any]


class EcosystemSummary(BaseModel):
    name: str
    manifests: List[str]
    producer_patterns: int
    consumer_patterns: int
    serializers: int


class CatalogResponse(BaseModel):
    version: str
    ecosystems: List[EcosystemSummary]
    flags: List[str]
    pii_rules: int


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> Orchestrator:
    return Orchestrator()


def create_app(
    orchestrator_factory: Callable[[], Orchestrator] = _default_orchestrator,
    catalog_loader: Callable[[], PatternCatalog] = load_catalog,
) -> FastAPI:
    """Create the FastAPI application exposing kafkascan operations."""

    app = FastAPI(title="kafkascan", version="1.0.0")

    async def get_orchestrator() -> Orchestrator:
        # A fresh orchestrator per request keeps scans independent.
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/scan", response_model=ScanResponse)
    async def scan(
        payload: ScanRequest,
        orchestrator: Orchestrator = Depends(get_orchestrator),
    ) -> ScanResponse:
        def _run_scan() -> ScanReport:
            return orchestrator.run_scan(payload.path, scope=payload.scope, workers=payload.workers)

        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(None, _run_scan)
        producers = [
            ProducerSummary(
                call_site=result.call_site.key,
                topic=result.call_site.topic,
                category=result.category.value,
                serializer=result.call_site.serializer,
            )
            for result in report.classifications
        ]
        return ScanResponse(
            root=report.root,
            catalog_version=report.catalog_version,
            cancelled=report.cancelled,
            producers=producers,
            consumer_count=len(report.consumers),
            warning_count=len(report.warnings),
            report=report_to_dict(report),
        )

    @app.get("/catalog", response_model=CatalogResponse)
    async def catalog() -> CatalogResponse:
        return CatalogResponse(**catalog_summary(catalog_loader()))

    @app.exception_handler(ScanRootError)
    async def scan_root_handler(_: Any, exc: ScanRootError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConfigError)
    async def config_error_handler(_: Any, exc: ConfigError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(_: Any, exc: CatalogError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    app = create_app()
    uvicorn.run(app, host=host, port=port)
