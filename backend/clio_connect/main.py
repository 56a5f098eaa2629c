from fastapi import FastAPI

from clio_connect.core.config import settings
from clio_connect.core.logging_setup import configure_logging
from clio_connect.core.observability import setup_observability
from clio_connect.routes.auth import router as auth_router
from clio_connect.routes.clio import router as clio_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title="CLIO Connect")
setup_observability(app, settings)

app.include_router(auth_router)
app.include_router(clio_router)


@app.get("/health")
def health():
    return {"status": "ok"}
