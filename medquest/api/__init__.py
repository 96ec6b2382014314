from medquest.api.routes import router

__all__ = ["router"]
