from dotenv import load_dotenv

from app.utils.env_helper import env_bool, env_float, env_int, env_list, env_none_or_str

load_dotenv()

SUPABASE_URL = env_none_or_str("PUBLIC_SUPABASE_URL")
SUPABASE_KEY = env_none_or_str("SECRET_API_KEY")
SUPABASE_JWT_SECRET = env_none_or_str("SUPABASE_JWT_SECRET")

FRONTEND_ORIGINS = env_list(
    "FRONTEND_URL", ["http://localhost:5173", "http://localhost:8080"]
)

LOG_LEVEL = env_none_or_str("LOG_LEVEL", "INFO").upper()
LOG_JSON = env_bool("LOG_JSON")

# Store access
STORE_TIMEOUT_SECONDS = env_int("STORE_TIMEOUT_SECONDS", 10)
STORE_MAX_RETRIES = env_int("STORE_MAX_RETRIES", 3)
STORE_RETRY_BACKOFF_SECONDS = env_float("STORE_RETRY_BACKOFF_SECONDS", 0.2)

# Supabase Realtime feed of message inserts
REALTIME_ENABLED = env_bool("REALTIME_ENABLED", True)
REALTIME_TIMEOUT_SECONDS = env_float("REALTIME_TIMEOUT_SECONDS", 10.0)

# Uploads
UPLOAD_MAX_BYTES = env_int("UPLOAD_MAX_BYTES", 5 * 1024 * 1024)
UPLOAD_BUCKET = env_none_or_str("UPLOAD_BUCKET", "images")
# Content type -> stored file extension
UPLOAD_ALLOWED_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}
