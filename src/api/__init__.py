"""botforge API layer: routes, schemas, and middleware."""

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router
from src.api.schemas import (
    BotResponse,
    ChatRequest,
    ChatResponse,
    ErrorResponse,
    HealthResponse,
    TrainDocumentsResponse,
    TrainingSummaryResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "BotResponse",
    "ChatRequest",
    "ChatResponse",
    "ErrorResponse",
    "HealthResponse",
    "TrainDocumentsResponse",
    "TrainingSummaryResponse",
]
