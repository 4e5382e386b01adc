import logging
import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app

from kaas.config import load_settings
from kaas.engine import ClusterManager
from kaas.errors import ConflictError, KaasError, NotFoundError, ValidationError
from kaas.model import AllAppsStatus, AppRequest, AppStatus, DBRequest

# Define Prometheus metrics
REQUEST_COUNT = Counter("app_request_count", "Total number of requests")
REQUEST_ERROR_COUNT = Counter("app_request_error_count", "Total number of failed requests")
REQUEST_LATENCY = Histogram("app_request_latency_seconds", "Request latency in seconds",
                            buckets=[0.1, 0.5, 1, 2, 5, 10, float("inf")])

logger = logging.getLogger(__name__)


def create_app(manager: Optional[ClusterManager] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
        if getattr(app.state, "manager", None) is None:
            app.state.manager = ClusterManager.from_settings(load_settings())
        yield

    app = FastAPI(title="KaaS", lifespan=lifespan)
    app.state.manager = manager
    app.mount("/metrics", make_asgi_app())

    @app.middleware("http")
    async def add_metrics(request: Request, call_next):
        # Count the number of requests
        REQUEST_COUNT.inc()

        # Measure the latency of each request
        start_time = time.time()
        response = await call_next(request)
        REQUEST_LATENCY.observe(time.time() - start_time)

        if response.status_code >= 400:
            REQUEST_ERROR_COUNT.inc()

        return response

    @app.exception_handler(RequestValidationError)
    async def invalid_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": jsonable_errors(exc)})

    def get_manager(request: Request) -> ClusterManager:
        return request.app.state.manager

    @app.post("/api/apps/", status_code=201)
    def create_app_deployment(appreq: AppRequest, request: Request):
        try:
            get_manager(request).deploy_app(appreq)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except ConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except KaasError as e:
            logger.error(f"Could not deploy app {appreq.name}: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"message": f"App {appreq.name} successfully created"}

    @app.get("/api/apps/", response_model=AllAppsStatus)
    def get_all_apps(request: Request):
        try:
            return AllAppsStatus(apps=get_manager(request).get_all_apps_status())
        except KaasError as e:
            logger.error(f"Could not list apps: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/api/apps/{name}", response_model=AppStatus)
    def get_app(name: str, request: Request):
        try:
            return get_manager(request).get_app_status(name)
        except NotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except KaasError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.post("/api/dbs/", status_code=201)
    def create_database(dbreq: DBRequest, request: Request):
        try:
            secret_name = get_manager(request).deploy_database(dbreq)
        except ConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except KaasError as e:
            logger.error(f"Could not deploy database {dbreq.name}: {e}")
            raise HTTPException(status_code=400, detail=str(e))
        return {"message": f"Database {dbreq.name} successfully created", "secret_name": secret_name}

    return app


def jsonable_errors(exc: RequestValidationError):
    # ctx may hold the raw exception, which is not JSON serializable
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=os.getenv("KAAS_HOST", "0.0.0.0"), port=int(os.getenv("KAAS_PORT", "2024")))
