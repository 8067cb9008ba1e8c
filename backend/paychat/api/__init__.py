from .chat_history_routes import router as chat_history_router
from .chat_routes import router as chat_router

__all__ = ["chat_history_router", "chat_router"]
