"""
Configuration management for Quizforge backend.
Loads configuration from environment variables and .env file.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
# Look for .env file in the backend directory or project root
BACKEND_DIR = Path(__file__).parent.parent
PROJECT_ROOT = BACKEND_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"

if ENV_FILE.exists():
    load_dotenv(ENV_FILE)
else:
    backend_env = BACKEND_DIR / ".env"
    if backend_env.exists():
        load_dotenv(backend_env)

PROMPTS_DIR = BACKEND_DIR / "prompts"
LEXICONS_DIR = BACKEND_DIR / "services" / "validation" / "lexicons"

# Generation service (Ollama-compatible HTTP API)
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "http://localhost:11434")
LLM_REQUEST_TIMEOUT = float(os.getenv("LLM_REQUEST_TIMEOUT", "300"))

# Per-task models
MODEL_PRIMARY = os.getenv("MODEL_PRIMARY", "mixtral:latest")
MODEL_FAST = os.getenv("MODEL_FAST", "mistral:latest")
MODEL_VISION = os.getenv("MODEL_VISION", "llava:latest")
MODEL_FACT_EXTRACTION = os.getenv("MODEL_FACT_EXTRACTION", MODEL_PRIMARY)
MODEL_QUESTION_GENERATION = os.getenv("MODEL_QUESTION_GENERATION", MODEL_PRIMARY)
MODEL_VALIDATION = os.getenv("MODEL_VALIDATION", MODEL_FAST)

# Per-task temperatures
TEMPERATURE_EXTRACTION = float(os.getenv("TEMPERATURE_EXTRACTION", "0.2"))
TEMPERATURE_QUESTION_GENERATION = float(os.getenv("TEMPERATURE_QUESTION_GENERATION", "0.3"))
TEMPERATURE_VALIDATION = float(os.getenv("TEMPERATURE_VALIDATION", "0.1"))
TEMPERATURE_LANGUAGE_DETECTION = float(os.getenv("TEMPERATURE_LANGUAGE_DETECTION", "0.0"))

# Per-task max output tokens
MAX_TOKENS_FACT_EXTRACTION = int(os.getenv("MAX_TOKENS_FACT_EXTRACTION", "2000"))
MAX_TOKENS_QUESTION_GENERATION = int(os.getenv("MAX_TOKENS_QUESTION_GENERATION", "3000"))
MAX_TOKENS_VALIDATION = int(os.getenv("MAX_TOKENS_VALIDATION", "500"))
MAX_TOKENS_OCR = int(os.getenv("MAX_TOKENS_OCR", "3000"))
MAX_TOKENS_LANGUAGE_DETECTION = int(os.getenv("MAX_TOKENS_LANGUAGE_DETECTION", "100"))

# Truncation limits (characters) applied before text goes into a prompt
TRUNCATE_COURSE_TEXT = int(os.getenv("TRUNCATE_COURSE_TEXT", "30000"))
TRUNCATE_CHAPTER_TEXT = int(os.getenv("TRUNCATE_CHAPTER_TEXT", "8000"))
TRUNCATE_SOURCE_TEXT = int(os.getenv("TRUNCATE_SOURCE_TEXT", "2000"))
TRUNCATE_QUESTION_CONTEXT = int(os.getenv("TRUNCATE_QUESTION_CONTEXT", "1000"))

# Retry (seconds)
RETRY_MAX_RETRIES = int(os.getenv("RETRY_MAX_RETRIES", "3"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "1.0"))
RETRY_MAX_DELAY = float(os.getenv("RETRY_MAX_DELAY", "30.0"))
RETRY_CRITICAL_MAX_RETRIES = int(os.getenv("RETRY_CRITICAL_MAX_RETRIES", "5"))
RETRY_CRITICAL_BASE_DELAY = float(os.getenv("RETRY_CRITICAL_BASE_DELAY", "2.0"))
RETRY_CRITICAL_MAX_DELAY = float(os.getenv("RETRY_CRITICAL_MAX_DELAY", "60.0"))
RETRY_FAST_MAX_RETRIES = int(os.getenv("RETRY_FAST_MAX_RETRIES", "2"))
RETRY_FAST_BASE_DELAY = float(os.getenv("RETRY_FAST_BASE_DELAY", "0.5"))
RETRY_FAST_MAX_DELAY = float(os.getenv("RETRY_FAST_MAX_DELAY", "5.0"))
RETRYABLE_STATUS_CODES = [
    int(code) for code in os.getenv("RETRYABLE_STATUS_CODES", "429,500,502,503,504").split(",")
]

# Circuit breakers
TEXT_BREAKER_FAILURE_THRESHOLD = int(os.getenv("TEXT_BREAKER_FAILURE_THRESHOLD", "5"))
TEXT_BREAKER_RESET_TIMEOUT = float(os.getenv("TEXT_BREAKER_RESET_TIMEOUT", "60"))
TEXT_BREAKER_HALF_OPEN_MAX_ATTEMPTS = int(os.getenv("TEXT_BREAKER_HALF_OPEN_MAX_ATTEMPTS", "2"))
VISION_BREAKER_FAILURE_THRESHOLD = int(os.getenv("VISION_BREAKER_FAILURE_THRESHOLD", "3"))
VISION_BREAKER_RESET_TIMEOUT = float(os.getenv("VISION_BREAKER_RESET_TIMEOUT", "120"))
VISION_BREAKER_HALF_OPEN_MAX_ATTEMPTS = int(os.getenv("VISION_BREAKER_HALF_OPEN_MAX_ATTEMPTS", "1"))

# Caches (TTL in seconds)
CLASSIFICATION_CACHE_MAX_SIZE = int(os.getenv("CLASSIFICATION_CACHE_MAX_SIZE", "200"))
CLASSIFICATION_CACHE_TTL = float(os.getenv("CLASSIFICATION_CACHE_TTL", str(7 * 24 * 3600)))
FACTS_CACHE_MAX_SIZE = int(os.getenv("FACTS_CACHE_MAX_SIZE", "100"))
FACTS_CACHE_TTL = float(os.getenv("FACTS_CACHE_TTL", str(24 * 3600)))
GENERATION_CACHE_MAX_SIZE = int(os.getenv("GENERATION_CACHE_MAX_SIZE", "500"))
GENERATION_CACHE_TTL = float(os.getenv("GENERATION_CACHE_TTL", str(24 * 3600)))

# Quality thresholds
# Empirical calibration values, kept for parity (see DESIGN.md)
BATCH_DUPLICATE_THRESHOLD = float(os.getenv("BATCH_DUPLICATE_THRESHOLD", "0.8"))
OPTION_SIMILARITY_THRESHOLD = float(os.getenv("OPTION_SIMILARITY_THRESHOLD", "0.85"))
COURSE_DUPLICATE_THRESHOLD = float(os.getenv("COURSE_DUPLICATE_THRESHOLD", "0.65"))
WINDOW_OVERLAP_THRESHOLD = float(os.getenv("WINDOW_OVERLAP_THRESHOLD", "0.5"))
SEMANTIC_MIN_CONFIDENCE = float(os.getenv("SEMANTIC_MIN_CONFIDENCE", "0.6"))
ENABLE_SEMANTIC_VALIDATION = os.getenv("ENABLE_SEMANTIC_VALIDATION", "true").lower() == "true"

# Segmentation (characters)
MIN_CHUNK_SIZE = int(os.getenv("MIN_CHUNK_SIZE", "500"))
MAX_CHUNK_SIZE = int(os.getenv("MAX_CHUNK_SIZE", str(TRUNCATE_CHAPTER_TEXT)))

# Bounded-concurrency waves
MAX_CONCURRENT_VALIDATIONS = int(os.getenv("MAX_CONCURRENT_VALIDATIONS", "3"))
MAX_CONCURRENT_CHAPTERS = int(os.getenv("MAX_CONCURRENT_CHAPTERS", "3"))
MAX_CONCURRENT_IMAGES = int(os.getenv("MAX_CONCURRENT_IMAGES", "5"))

# LLM call log
LLM_LOG_MAX_ENTRIES = int(os.getenv("LLM_LOG_MAX_ENTRIES", "1000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# API configuration
API_V1_PREFIX = "/api/v1"
# CORS origins can be comma-separated list in env var
CORS_ORIGINS_STR = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")
CORS_ORIGINS = [origin.strip() for origin in CORS_ORIGINS_STR.split(",")]
VALIDATE_CONFIG_ON_STARTUP = os.getenv("VALIDATE_CONFIG_ON_STARTUP", "true").lower() == "true"
