from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    api_password: str | None = None  # The password for protecting the API endpoints.
    log_level: str = "INFO"  # The logging level to use.
    host: str = "0.0.0.0"  # The interface to bind the server to.
    port: int = 8080  # The port to listen on.
    prober_path: str = "yt-dlp"  # Executable used to fetch media metadata.
    transcoder_path: str = "ffmpeg"  # Executable used to remux/transcode the stream.
    metadata_cache_ttl: int = 600  # Seconds a fetched metadata document stays valid.
    metadata_cache_sweep_interval: int = 60  # Seconds between background sweeps of expired metadata.
    video_preset: str = "ultrafast"  # libx264 preset used when video has to be re-encoded.
    keyframe_interval: int = 60  # Forced GOP size (frames) when re-encoding video.
    transcoder_threads: int = 0  # Thread count passed to the transcoder; 0 lets it decide.
    stream_chunk_size: int = 64 * 1024  # Maximum bytes read from the transcoder per chunk.
    enable_streaming_progress: bool = False  # Whether to log transcoder progress lines at INFO.

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
