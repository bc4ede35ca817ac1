from fastapi import FastAPI
from file_pipeline.api.storage_events import close_dispatcher, router as storage_events_router
from dotenv import load_dotenv
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging


load_dotenv()
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_dispatcher()
    logging.info("File pipeline clients closed")


app = FastAPI(title="Uploaded File Processing", lifespan=lifespan)
app.include_router(storage_events_router, prefix="/api", tags=["files"])


@app.get("/")
async def root():
    return {"message": "File processing pipeline is running"}


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


if __name__ == "__main__":
    import uvicorn
    try:
        uvicorn.run(app, host="0.0.0.0", port=8001)
    except KeyboardInterrupt:
        logging.info("FastAPI server interrupted")
    finally:
        logging.info("Server shutdown complete")
