import os
from dotenv import load_dotenv


def load_environment_config():
    """
    Load environment-specific configuration based on APP_ENV.

    Environments:
    - production: Uses .env.production
    - sit: Uses .env.sit
    - test: Uses .env.test
    - development: Uses .env (default)
    """
    env = os.getenv('APP_ENV', 'development').lower()

    env_files = {
        'production': '.env.production',
        'sit': '.env.sit',
        'test': '.env.test',
        'development': '.env',
    }

    env_file = env_files.get(env, '.env')

    if os.path.exists(env_file):
        load_dotenv(env_file)
        print(f"🔧 Loaded configuration from: {env_file}")
    else:
        load_dotenv()
        print(f"⚠️  Environment file {env_file} not found, using default .env")
        if env != 'development':
            print(f"💡 Create {env_file} for {env} environment configuration")


load_environment_config()


APP_ENV = os.getenv('APP_ENV', 'development').lower()

# Reasoning service (OpenAI chat model through LangChain)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
USE_LLM = bool(OPENAI_API_KEY)
REASONING_TEMPERATURE = float(os.getenv("REASONING_TEMPERATURE", "0"))

# External data operations
OPERATIONS_BASE_URL = os.getenv("OPERATIONS_BASE_URL", "http://localhost:8092/api/operations")
OPERATIONS_TIMEOUT_SECONDS = float(os.getenv("OPERATIONS_TIMEOUT_SECONDS", "30"))

# Result cache
CACHE_DEFAULT_TTL_MS = int(os.getenv("CACHE_DEFAULT_TTL_MS", str(5 * 60 * 1000)))
# Cache size above which a cleanup is recommended in the statistics
CACHE_CLEANUP_THRESHOLD = int(os.getenv("CACHE_CLEANUP_THRESHOLD", "100"))

# Execution budget
MAX_EXECUTION_TIME_MS = int(os.getenv("MAX_EXECUTION_TIME_MS", "30000"))
PHASE_TIMEOUT_SECONDS = float(os.getenv("PHASE_TIMEOUT_SECONDS", "20"))
ENABLE_PARALLEL_PHASES = os.getenv("ENABLE_PARALLEL_PHASES", "true").lower() == "true"

# Input limits
MAX_QUERY_LENGTH = int(os.getenv("MAX_QUERY_LENGTH", "500"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
ENABLE_PII_REDACTION = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"

# Application port configuration
APP_PORT = int(os.getenv("APP_PORT", "8091"))


# Parse CORS origins from comma-separated string
cors_origins_str = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in cors_origins_str.split(",") if origin.strip()]

CORS_ALLOW_CREDENTIALS = os.getenv("CORS_ALLOW_CREDENTIALS", "true").lower() == "true"

cors_methods_str = os.getenv("CORS_ALLOW_METHODS", "*")
CORS_ALLOW_METHODS = [method.strip() for method in cors_methods_str.split(",") if method.strip()] if cors_methods_str != "*" else ["*"]

cors_headers_str = os.getenv("CORS_ALLOW_HEADERS", "*")
CORS_ALLOW_HEADERS = [header.strip() for header in cors_headers_str.split(",") if header.strip()] if cors_headers_str != "*" else ["*"]

CORS_MAX_AGE = int(os.getenv("CORS_MAX_AGE", "600"))
