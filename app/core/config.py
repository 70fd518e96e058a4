"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    GEMINI_API_KEY          — Gemini provider API key
    GROQ_API_KEY            — Groq provider API key (primary)
    OPENROUTER_API_KEY      — OpenRouter provider API key (last fallback)
    GITHUB_TOKEN            — Optional token for the GitHub contents API
    JOB_STORE_DIR           — Directory for file-backed job records (default: in-memory)
    CHECKPOINT_DIR          — Directory for step checkpoints (default: in-memory)
    CORS_ORIGINS            — Comma-separated list of allowed frontend origins

Fetch Budget:
    MAX_FILES and MAX_FILE_BYTES cap what the GitHub fetcher returns.
    The prompt budgets below assume these caps hold, so keep
    PROMPT_MAX_FILE_CHARS <= MAX_FILE_BYTES.

Prompt Budget:
    PROMPT_MAX_TOTAL_CHARS is the global character budget for the file
    context sent to the model. PROMPT_MAX_FILE_CHARS is the per-file budget;
    longer files are truncated with an explicit marker.

Synthesis Retry:
    SYNTHESIS_MAX_ATTEMPTS bounds the self-correction loop. After exhaustion
    the synthesizer returns the degraded report instead of raising.
"""
import os
from dotenv import load_dotenv

load_dotenv()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY")
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

# Fetch caps
MAX_FILES = int(os.getenv("MAX_FILES", 50))
MAX_FILE_BYTES = int(os.getenv("MAX_FILE_BYTES", 100_000))
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", 15))
FETCH_BATCH_SIZE = int(os.getenv("FETCH_BATCH_SIZE", 8))

# Prompt budget (characters)
PROMPT_MAX_TOTAL_CHARS = int(os.getenv("PROMPT_MAX_TOTAL_CHARS", 60_000))
PROMPT_MAX_FILE_CHARS = int(os.getenv("PROMPT_MAX_FILE_CHARS", 8_000))

# Synthesis
SYNTHESIS_MAX_ATTEMPTS = int(os.getenv("SYNTHESIS_MAX_ATTEMPTS", 3))
MODEL_MAX_OUTPUT_TOKENS = int(os.getenv("MODEL_MAX_OUTPUT_TOKENS", 2048))

# Persistence (unset → in-memory)
JOB_STORE_DIR = os.getenv("JOB_STORE_DIR", "")
CHECKPOINT_DIR = os.getenv("CHECKPOINT_DIR", "")

# Provider health cooldown
PROVIDER_COOLDOWN_THRESHOLD = int(os.getenv("PROVIDER_COOLDOWN_THRESHOLD", 4))
PROVIDER_COOLDOWN_SKIP_COUNT = int(os.getenv("PROVIDER_COOLDOWN_SKIP_COUNT", 5))

# Frontend origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000",
    ).split(",")
    if origin.strip()
]
