"""Main FastAPI application"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

from app.config import settings
from app.core.errors import ChatError
from app.database import connect_to_mongo, close_mongo_connection, ensure_chat_indexes, database
from app.api.v1 import auth, chat, chat_socket
from app.realtime.change_feed import MessageChangeFeed
from app.realtime.gateway import ChatGateway
from app.realtime.sessions import GatewaySessions
from app.repositories import ChatRepositories
from app.schemas.common import api_response
from app.services.chat_service import ChatService

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=api_response(None, message, status_code),
    )


def create_app(repositories: Optional[ChatRepositories] = None) -> FastAPI:
    """
    Build the application.

    Args:
        repositories: Chat stores to use; MongoDB is connected at startup when omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup and shutdown events"""
        # Startup
        logger.info(f"Starting up {settings.app_name}...")
        repos = repositories
        owns_database = repos is None
        if owns_database:
            await connect_to_mongo()
            try:
                await ensure_chat_indexes(database.db)
            except Exception as e:
                logger.error(f"Failed to create chat indexes: {str(e)}")
            repos = ChatRepositories.from_mongo(database.db)

        service = ChatService(
            repos.rooms,
            repos.messages,
            repos.users,
            history_page_size=settings.chat_history_page_size,
            pending_rooms_limit=settings.chat_pending_rooms_limit,
        )
        sessions = GatewaySessions()
        gateway = ChatGateway(service, sessions)
        app.state.chat_service = service
        app.state.chat_sessions = sessions
        app.state.chat_gateway = gateway

        change_feed = None
        if settings.chat_change_feed_enabled:
            change_feed = MessageChangeFeed(
                repos.messages,
                gateway,
                retry_initial=settings.chat_change_feed_retry_initial,
                retry_max=settings.chat_change_feed_retry_max,
            )
            change_feed.start()
        app.state.chat_change_feed = change_feed
        logger.info("Application ready!")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        if change_feed:
            await change_feed.stop()
        if owns_database:
            await close_mongo_connection()
        logger.info("Shutdown complete!")

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="""
        Pet shop backend: realtime customer support chat.

        ## Features

        * **Rooms**: customers open a support room, staff claim and close them
        * **Messages**: persisted history with read receipts and unread counts
        * **Realtime**: WebSocket gateway at `/ws/chat` with typing indicators and staff alerts

        ## Authentication

        Endpoints require a JWT in the Authorization header:
        ```
        Authorization: Bearer <your_jwt_token>
        ```
        WebSocket clients send the same token in an `authenticate` event.
        """,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check endpoints
    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint to verify the API is running.
        """
        return {
            "success": True,
            "status": "healthy",
            "version": "1.0.0",
            "app": settings.app_name
        }

    @app.get("/liveness", tags=["Health"])
    async def liveness_probe():
        """
        Kubernetes liveness probe endpoint.
        Returns 200 if the application is alive.
        """
        return {
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat()
        }

    @app.get("/readiness", tags=["Health"])
    async def readiness_probe():
        """
        Kubernetes readiness probe endpoint.
        Returns 200 when the database answers a ping, 503 otherwise.
        """
        if database.db is None:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not ready",
                    "database": "not connected",
                    "timestamp": datetime.utcnow().isoformat()
                },
            )

        try:
            await database.db.command("ping")
        except Exception as e:
            logger.error(f"Readiness check failed: {str(e)}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "not ready",
                    "error": str(e),
                    "timestamp": datetime.utcnow().isoformat()
                },
            )

        return {
            "status": "ready",
            "database": "connected",
            "timestamp": datetime.utcnow().isoformat()
        }

    # Include routers
    app.include_router(
        auth.router,
        prefix="/api/auth",
        tags=["Authentication"]
    )

    app.include_router(
        chat.router,
        prefix="/api/chat",
        tags=["Support Chat"]
    )

    app.include_router(
        chat_socket.router,
        tags=["Support Chat - Realtime"]
    )

    # Error handlers
    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return error_response(404, "The requested resource was not found")
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Invalid request"
        return error_response(400, message)

    @app.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        """Custom 500 handler"""
        logger.exception(f"Internal server error: {str(exc)}")
        return error_response(500, "An unexpected error occurred. Please try again later.")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
