import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./campusnet.db")
SQL_ECHO = _env_bool("SQL_ECHO", "false")

SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "4320"))  # 3 days

# Vector index (Weaviate)
WEAVIATE_URL = os.getenv("WEAVIATE_URL", "http://localhost:8080").rstrip("/")
WEAVIATE_API_KEY = os.getenv("WEAVIATE_API_KEY")
WEAVIATE_TIMEOUT = float(os.getenv("WEAVIATE_TIMEOUT", "5.0"))

# Embedding generator (OpenAI-compatible /embeddings endpoint)
EMBEDDING_API_URL = os.getenv("EMBEDDING_API_URL", "http://localhost:11434/v1").rstrip("/")
EMBEDDING_API_KEY = os.getenv("EMBEDDING_API_KEY")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "10.0"))

SEARCH_LIMIT = int(os.getenv("SEARCH_LIMIT", "10"))
SEARCH_MAX_DISTANCE = float(os.getenv("SEARCH_MAX_DISTANCE", "0.6"))

RATELIMIT_ENABLED = _env_bool("FORUM_RATELIMIT_ENABLED", "true")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "*").split(",")
    if o.strip()
]
