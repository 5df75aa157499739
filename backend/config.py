import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8001
DEFAULT_MODEL_ID = "gemini-2.0-flash-exp"
DEFAULT_MAX_SEGMENT_DURATION = 34200  # 9.5 hours
DEFAULT_INLINE_LIMIT_MB = 20
DEFAULT_RATE_LIMIT_MAX_REQUESTS = 5
DEFAULT_RATE_LIMIT_WINDOW = 300
DEFAULT_RATE_LIMIT_SWEEP_INTERVAL = 60


class Config:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        self.host = os.environ.get("HOST", DEFAULT_HOST)
        self.port = int(os.environ.get("PORT", DEFAULT_PORT))
        self.debug = os.environ.get("DEBUG", "0") == "1"
        self.model_id = os.environ.get("MODEL_ID", "").strip() or DEFAULT_MODEL_ID
        self.max_segment_duration = float(os.environ.get("MAX_SEGMENT_DURATION", DEFAULT_MAX_SEGMENT_DURATION))
        self.inline_limit_mb = float(os.environ.get("INLINE_LIMIT_MB", DEFAULT_INLINE_LIMIT_MB))
        self.rate_limit_max_requests = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", DEFAULT_RATE_LIMIT_MAX_REQUESTS))
        self.rate_limit_window = float(os.environ.get("RATE_LIMIT_WINDOW", DEFAULT_RATE_LIMIT_WINDOW))
        self.rate_limit_sweep_interval = float(
            os.environ.get("RATE_LIMIT_SWEEP_INTERVAL", DEFAULT_RATE_LIMIT_SWEEP_INTERVAL)
        )
        self.temp_dir = os.environ.get("TEMP_DIR", "/tmp/echo-transcribe")
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)

    @property
    def inline_limit_bytes(self) -> int:
        return int(self.inline_limit_mb * 1024 * 1024)


config = Config()


def get_config() -> Config:
    return config


def create_transcription_adapter(api_key: str, cfg: Config = config):
    """Create a Gemini adapter bound to one caller's API key.

    Lazy import so the SDK is only loaded when a request needs it.
    """
    from adapters.gemini.transcription import GeminiTranscriptionAdapter
    return GeminiTranscriptionAdapter(
        api_key,
        model_id=cfg.model_id,
        inline_limit_bytes=cfg.inline_limit_bytes,
    )


def create_audio_adapter(cfg: Config = config):
    """Create the per-request audio processing adapter (always FFmpeg)."""
    from adapters.ffmpeg.audio import FFmpegAudioAdapter
    return FFmpegAudioAdapter(temp_dir=cfg.temp_dir)


def create_infra_adapters(cfg: Config = config):
    """Create the process-wide infrastructure adapters."""
    from adapters.local.memory_rate_limiter import InMemoryRateLimiter
    from adapters.local.log_progress import LogProgressAdapter

    adapters = {
        "rate_limiter": InMemoryRateLimiter(),
        "progress": LogProgressAdapter(),
    }
    logger.info(f"Infra adapters: {', '.join(type(v).__name__ for v in adapters.values())}")
    return adapters
