from mediarelay.configs import settings
from mediarelay.main import app

# Run the app
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
