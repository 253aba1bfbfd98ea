import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


# Environment variables for AllergenCheck-API
PORT = int(os.getenv("PORT", 8000))

# Relational store, sqlite file by default for local development
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./allergen_check.db")

# JWT Secret Key
# to get a string like this run:
# openssl rand -hex 32
SECRET_KEY = os.getenv("SECRET_KEY", None)
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 28))

# API key and model name for the allergen classifier (google ai studio)
LLM_API_KEY = os.getenv("LLM_API_KEY", None)
LLM_MODEL_NAME = os.getenv("LLM_MODEL_NAME", "gemini-2.0-flash")

# classifier limits, timeout in seconds
CLASSIFIER_TIMEOUT = float(os.getenv("CLASSIFIER_TIMEOUT", 60))
CLASSIFIER_TEMPERATURE = float(os.getenv("CLASSIFIER_TEMPERATURE", 0.1))
CLASSIFIER_MAX_OUTPUT_TOKENS = int(os.getenv("CLASSIFIER_MAX_OUTPUT_TOKENS", 1500))
CLASSIFIER_MAX_INPUT_CHARS = int(os.getenv("CLASSIFIER_MAX_INPUT_CHARS", 4000))
CLASSIFIER_MALFORMED_RETRIES = int(os.getenv("CLASSIFIER_MALFORMED_RETRIES", 1))

# langsmith keys optional, read by langsmith itself
LANGSMITH_TRACING = os.getenv("LANGSMITH_TRACING", "false")
LANGSMITH_API_KEY = os.getenv("LANGSMITH_API_KEY", None)
LANGSMITH_PROJECT = os.getenv("LANGSMITH_PROJECT", None)

# external product sources, timeout and delay in seconds
OPENFOODFACTS_API_URL = os.getenv("OPENFOODFACTS_API_URL", "https://world.openfoodfacts.org/api/v2")
OPENFOODFACTS_USER_AGENT = os.getenv("OPENFOODFACTS_USER_AGENT", "AllergenCheck-API/1.0 (allergen lookup)")
SOURCE_TIMEOUT = float(os.getenv("SOURCE_TIMEOUT", 30))
SOURCE_PAGE_SIZE = int(os.getenv("SOURCE_PAGE_SIZE", 50))
SOURCE_PAGE_DELAY = float(os.getenv("SOURCE_PAGE_DELAY", 0.1))

# uploaded ingredient images
UPLOADED_IMAGES_DIR = os.getenv("UPLOADED_IMAGES_DIR", "uploads/ingredients")
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", 2 * 1024 * 1024))

# scheduled scraping
SCHEDULER_NODE = os.getenv("SCHEDULER_NODE", None)
SCHEDULER_MIN_HOURS_BETWEEN_RUNS = float(os.getenv("SCHEDULER_MIN_HOURS_BETWEEN_RUNS", 8))
SCHEDULER_LOCK_TTL_MINUTES = int(os.getenv("SCHEDULER_LOCK_TTL_MINUTES", 180))
SCHEDULER_CATEGORY_DELAY = float(os.getenv("SCHEDULER_CATEGORY_DELAY", 2))

# app settings
APP_TIMEZONE = os.getenv("APP_TIMEZONE", "Europe/Berlin")
LOG_FILE = os.getenv("LOG_FILE", "allergen_check.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


def check_required_env_vars(names):
    """Raise ValueError for the first variable in `names` that is not set."""
    values = globals()
    for var in names:
        if values.get(var) is None:
            raise ValueError(f"Environment variable {var} is not set. Please set it in the .env file.")
