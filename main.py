# main.py
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.logging_config import configure_logging
from database import init_db
from middleware.request_logging import RequestLoggingMiddleware
from routers.command_routes import router as command_router
from routers.portfolio_routes import router as portfolio_router
from routers.positions_routes import router as positions_router

configure_logging()

app = FastAPI(title="Portfolio Engine")

origins = [
    o.strip()
    for o in (os.getenv("CORS_ORIGINS") or "http://localhost:3000").split(",")
    if o.strip()
]

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(portfolio_router, prefix="/api/portfolio")
app.include_router(positions_router, prefix="/api")
app.include_router(command_router, prefix="/api/command")


@app.get("/health")
def health():
    return {"status": "ok"}


# db startup
init_db()
