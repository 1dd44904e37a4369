# app/core/config.py
import os
import sys
from dotenv import load_dotenv
from loguru import logger
import logging
from pathlib import Path
from typing import List

try:
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / '.env'
    logger.debug(f"Calculated .env path using pathlib: {dotenv_path}")
except Exception as e:
    logger.error(f"Error calculating project root/dotenv path: {e}", exc_info=True)
    dotenv_path = Path(".env") # Asumsi .env ada di direktori kerja
    logger.warning(f"Using fallback .env path: {dotenv_path.resolve()}")

# --- Muat file .env JIKA ADA ---
if dotenv_path.is_file():
    logger.info(f"Loading environment variables from: {dotenv_path}")
    load_dotenv(dotenv_path=dotenv_path, override=True)
else:
    logger.warning(f".env file not found at {dotenv_path}. Relying on system environment variables.")

# --- Intercept Handler (Loguru menangkap log standar) ---
class InterceptHandler(logging.Handler):
    """Routes standard library log records into Loguru."""
    def emit(self, record: logging.LogRecord) -> None:
        try: level = logger.level(record.levelname).name
        except ValueError: level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

# --- Setup Logging ---
def setup_logging():
    """Configure Loguru sinks for the application."""
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = logging.getLevelName(log_level_name)

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )
    log_file_path = Path(os.getenv("LOG_FILE_PATH", "logs/marketplace_{time:YYYY-MM-DD}.log"))
    log_rotation = os.getenv("LOG_ROTATION", "1 day")
    log_retention = os.getenv("LOG_RETENTION", "7 days")
    log_serialize = os.getenv("LOG_SERIALIZE", "False").lower() == 'true'

    logger.remove() # Hapus handler default

    # Handler Console
    logger.add(
        sys.stderr,
        level=log_level,
        format=log_format,
        colorize=True,
    )

    # Handler File
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file_path,
            level=log_level,
            format=log_format,
            rotation=log_rotation,
            retention=log_retention,
            serialize=log_serialize,
            enqueue=True,
            backtrace=True,
            diagnose=True,
            encoding="utf-8"
        )
        logger.info(f"File logging enabled at: {log_file_path}")
    except Exception as e:
        logger.error(f"Failed to setup file logging at {log_file_path}: {e}")

    # --- Intercept Log Standar ---
    try:
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
        uvicorn_access = logging.getLogger("uvicorn.access")
        if uvicorn_access:
             uvicorn_access.handlers = [InterceptHandler()]
             uvicorn_access.propagate = False
        for name in logging.root.manager.loggerDict:
            if name.startswith(("uvicorn.", "fastapi.", "starlette.", "pymongo")):
                 existing_logger = logging.getLogger(name)
                 existing_logger.handlers = [InterceptHandler()]
                 existing_logger.propagate = False
        logger.info("Standard library logging intercepted.")
    except Exception as e:
         logger.error(f"Failed to intercept standard logging: {e}")

    logger.info("Loguru logging setup complete.")
    logger.info(f"Logging level set to: {log_level_name} ({log_level})")


# --- Database Configuration ---
MONGODB_URL: str = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME: str = os.getenv("DATABASE_NAME", "0g-nft-marketplace")

# --- Marketplace Configuration ---
DEFAULT_BLOCKCHAIN: str = os.getenv("DEFAULT_BLOCKCHAIN", "0g")
# Alamat kontrak yang dipakai saat lazy mint difinalisasi. Kosong = dibuat acak (simulasi).
NFT_CONTRACT_ADDRESS: str = os.getenv("NFT_CONTRACT_ADDRESS", "")

CORS_ORIGINS: List[str] = [
    origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if origin.strip()
]

# --- Token Manager Configuration ---
HYDRATION_POLICIES = ("degrade-to-zero", "fail-closed", "retry")

TOKEN_HYDRATION_FAILURE_POLICY: str = os.getenv("TOKEN_HYDRATION_FAILURE_POLICY", "degrade-to-zero").lower()
if TOKEN_HYDRATION_FAILURE_POLICY not in HYDRATION_POLICIES:
    logger.warning(
        f"Invalid TOKEN_HYDRATION_FAILURE_POLICY '{TOKEN_HYDRATION_FAILURE_POLICY}'. Using default: degrade-to-zero."
    )
    TOKEN_HYDRATION_FAILURE_POLICY = "degrade-to-zero"

try:
    TOKEN_HYDRATION_RETRIES: int = int(os.getenv("TOKEN_HYDRATION_RETRIES", "3"))
except ValueError:
    logger.warning("Invalid TOKEN_HYDRATION_RETRIES. Using default: 3.")
    TOKEN_HYDRATION_RETRIES = 3

try:
    TOKEN_HYDRATION_RETRY_DELAY: float = float(os.getenv("TOKEN_HYDRATION_RETRY_DELAY", "0.5"))
except ValueError:
    logger.warning("Invalid TOKEN_HYDRATION_RETRY_DELAY. Using default: 0.5.")
    TOKEN_HYDRATION_RETRY_DELAY = 0.5


# --- Log Konfigurasi yang Dimuat ---
logger.info(f"Database Name: {DATABASE_NAME}")
logger.info(f"Default blockchain: {DEFAULT_BLOCKCHAIN}")
logger.info(f"Token hydration failure policy: {TOKEN_HYDRATION_FAILURE_POLICY} (retries={TOKEN_HYDRATION_RETRIES})")
