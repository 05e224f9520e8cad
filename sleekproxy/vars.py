import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "sleekproxy")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

PROXY_PATH = os.environ.get("PROXY_PATH", "/proxy")
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "20"))
PROXY_BLOCK_PRIVATE = os.environ.get("PROXY_BLOCK_PRIVATE", "true").lower() == "true"
PROXY_ALLOWED_HOSTS = [
    h.strip().lower()
    for h in os.environ.get("PROXY_ALLOWED_HOSTS", "").split(",")
    if h.strip()
]
PROXY_DEFAULT_USER_AGENT = os.environ.get("PROXY_DEFAULT_USER_AGENT", "SleekProxy/1.0")

# Basic auth is only enforced when both values are set
PROXY_AUTH_USERNAME = os.environ.get("PROXY_AUTH_USERNAME", "")
PROXY_AUTH_PASSWORD = os.environ.get("PROXY_AUTH_PASSWORD", "")

FUNCTION_PROXY_PATH = os.environ.get(
    "FUNCTION_PROXY_PATH", "/.netlify/functions/proxy"
)
FUNCTION_DEFAULT_USER_AGENT = os.environ.get(
    "FUNCTION_DEFAULT_USER_AGENT", "SleekProxy-Netlify/1.0"
)

PUBLIC_DIR = os.environ.get(
    "PUBLIC_DIR", os.path.join(os.path.dirname(os.path.dirname(__file__)), "public")
)

HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()
