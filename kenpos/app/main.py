import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kenpos.app.api.deps import connectivity
from kenpos.app.api.v1.api import api_router
from kenpos.app.core.config import settings
from kenpos.app.workers.tasks.sync import schedule_on_reconnect

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

app = FastAPI(title="KenPOS Terminal")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

# Offline→online edge kicks off a background sweep of the outbox
connectivity.subscribe(schedule_on_reconnect)

app.include_router(api_router)
