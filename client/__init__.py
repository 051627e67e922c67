from client.api import ApiClient, ApiError, ApiResponse, SessionContext

__all__ = ["ApiClient", "ApiError", "ApiResponse", "SessionContext"]
