from .video import video_router

__all__ = ["video_router"]
