import shutil
import logging
import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

from config import get_config

config = get_config()
if config.debug:
    logging.getLogger().setLevel(logging.DEBUG)

from api import create_app

app = create_app(config)

if __name__ == "__main__":
    logger.info(f"Starting Echo Transcribe on {config.host}:{config.port}")
    logger.info(f"Model: {config.model_id}, max segment: {config.max_segment_duration:.0f}s")
    if shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None:
        logger.warning("ffmpeg/ffprobe not found on PATH; audio uploads will fail")

    uvicorn.run(app, host=config.host, port=config.port)
