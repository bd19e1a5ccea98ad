import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kbparts.storage.file_store import LocalDocumentStore
from kbparts.core.process.processing_client import ProcessingClient
from kbparts.core.pipeline.ingestion import IngestionPipeline

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def build_pipeline() -> IngestionPipeline:
    document_store = LocalDocumentStore()
    processing_client = ProcessingClient()
    return IngestionPipeline(
        document_store=document_store,
        processing_client=processing_client
    )

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("Initializing knowledge-base storage and ingestion pipeline...")

    pipeline = build_pipeline()
    app.state.document_store = pipeline.document_store
    app.state.ingestion_pipeline = pipeline

    # In-memory upload job tracking; batch handles keep their tasks alive
    app.state.jobs_db = {}
    app.state.batches = {}

    logger.info("Initialization complete.")

    yield

    # --- Shutdown ---
    running = [job_id for job_id, batch in app.state.batches.items() if not batch.done()]
    if running:
        logger.warning(f"Shutting down with {len(running)} unfinished upload batches: {running}")
    logger.info("Shutting down knowledge-base backend...")

app = FastAPI(
    title="kbparts",
    description="Multi-part knowledge-base document ingestion",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health", tags=["System"])
def health_check():
    return {"status": "ok"}

from kbparts.api.routes import ingest, documents, webhooks

app.include_router(ingest.router, prefix="/api", tags=["Ingestion"])
app.include_router(documents.router, prefix="/api", tags=["Documents"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
