"""
FastAPI Main Application - HTTP adapter for the conversion bot.

A chat gateway POSTs every user message to /webhook:
1. The message (text and/or one attachment) becomes an InboundEvent
2. The orchestrator advances that user's conversation
3. Every reply, files included, is returned in order in the JSON response
"""

import logging
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from filebot.artifacts import ArtifactManager
from filebot.channel import Attachment, InboundEvent, ReplyBuffer
from filebot.config import Settings, settings
from filebot.engine import DocumentEngine
from filebot.logger import configure_logging
from filebot.models import HealthResponse, WebhookResponse
from filebot.orchestrator import Orchestrator
from filebot.pdf_operations import ExternalTools
from filebot.scheduler import MaintenanceScheduler
from filebot.session_store import Session, SessionStore


logger = logging.getLogger(__name__)

SERVICE_NAME = "FileBot"
APP_VERSION = "0.1.0"


def create_app(config: Settings = settings) -> FastAPI:
    """Build the application and its components from configuration"""

    # ============================================
    # COMPONENTS
    # ============================================

    artifacts = ArtifactManager(config.staging_dir, retention_minutes=config.artifact_retention_minutes)

    def release_session_files(session: Session) -> None:
        artifacts.release_all(f.handle for f in session.uploaded_files)

    store = SessionStore(timeout_minutes=config.session_timeout_minutes, on_discard=release_session_files)
    engine = DocumentEngine(
        artifacts,
        ExternalTools(
            ghostscript=config.ghostscript_path,
            soffice=config.soffice_path,
            ocrmypdf=config.ocrmypdf_path,
            timeout_seconds=config.tool_timeout_seconds,
        ),
    )
    orchestrator = Orchestrator(
        store,
        artifacts,
        engine,
        max_file_size_bytes=config.max_file_size_mb * 1024 * 1024,
    )
    scheduler = MaintenanceScheduler(
        store,
        artifacts,
        session_interval_minutes=config.session_sweep_interval_minutes,
        artifact_interval_minutes=config.artifact_sweep_interval_minutes,
    )

    # ============================================
    # FASTAPI APP INITIALIZATION
    # ============================================

    app = FastAPI(
        title=SERVICE_NAME,
        description="Conversational PDF and document conversion bot",
        version=APP_VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = store
    app.state.artifacts = artifacts
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler

    # ============================================
    # STARTUP / SHUTDOWN
    # ============================================

    @app.on_event("startup")
    async def startup_event():
        """Prepare the staging area and start the sweep timers"""
        configure_logging(config.log_level)
        scheduler.start()
        logger.info(f"✓ {SERVICE_NAME} started (staging dir: {artifacts.staging_dir})")

    @app.on_event("shutdown")
    async def shutdown_event():
        scheduler.shutdown()
        logger.info(f"✓ {SERVICE_NAME} shutting down")

    # ============================================
    # API ENDPOINTS
    # ============================================

    @app.get("/", response_model=HealthResponse)
    async def root():
        """Health check endpoint"""
        return HealthResponse(
            service=SERVICE_NAME,
            status="running",
            version=APP_VERSION,
            sessions=store.stats(),
        )

    # Sync route: FastAPI runs it on a worker thread, so a slow conversion
    # for one user doesn't block the others.
    @app.post("/webhook", response_model=WebhookResponse)
    def webhook(
        sender_id: str = Form(..., description="Chat user id"),
        text: str = Form("", description="Message text"),
        file: Optional[UploadFile] = File(None, description="Attachment"),
    ):
        """Deliver one chat message and return everything the bot replies"""
        sender_id = sender_id.strip()
        if not sender_id:
            raise HTTPException(status_code=400, detail="sender_id is required")

        download = None
        if file is not None and file.filename:
            def download() -> Attachment:
                return Attachment(
                    data=file.file.read(),
                    mime_type=file.content_type or "application/octet-stream",
                    original_name=file.filename or "",
                )

        channel = ReplyBuffer()
        orchestrator.handle_event(
            InboundEvent(sender_id=sender_id, text=text, download_attachment=download),
            channel,
        )
        return WebhookResponse(sender_id=sender_id, replies=channel.replies)

    @app.delete("/sessions/{sender_id}")
    async def delete_session(sender_id: str):
        """Destroy a conversation and release its files"""
        if store.peek(sender_id) is None:
            raise HTTPException(status_code=404, detail="Session not found")
        store.clear(sender_id)
        return {"status": "success", "message": f"Session {sender_id} deleted"}

    return app


app = create_app()


# ============================================
# RUN SERVER (for development)
# ============================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "filebot.main:app",
        host=settings.host,
        port=settings.port,
        reload=True
    )
