from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from profile_scout.api.routes import jobs
from profile_scout.config import settings
from profile_scout.services.context import build_context
from profile_scout.services.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging(settings)
    context = build_context(settings)
    app.state.context = context
    await context.start()
    yield
    # Shutdown
    await context.close()


app = FastAPI(
    title="ProfileScout",
    description="Adaptive person-research jobs driven by a browser and a language model",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(jobs.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "profile_scout"}
