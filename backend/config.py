"""Configuration management for the TodoBot assistant."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

# Model Configuration
MODEL_NAME = os.getenv("MODEL_NAME", "llama-3.3-70b-versatile")
MODEL_TEMPERATURE = float(os.getenv("MODEL_TEMPERATURE", "0.7"))
MODEL_TIMEOUT_SECONDS = float(os.getenv("MODEL_TIMEOUT_SECONDS", "30"))

# Task store Configuration
TODOS_TABLE = "todos"
TASK_STORE_TIMEOUT_SECONDS = int(os.getenv("TASK_STORE_TIMEOUT_SECONDS", "10"))

# Conversation loop Configuration
MAX_HISTORY_LENGTH = int(os.getenv("MAX_HISTORY_LENGTH", "10"))
MAX_ITERATIONS = int(os.getenv("MAX_ITERATIONS", "8"))
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "2"))
RETRY_INITIAL_DELAY = float(os.getenv("RETRY_INITIAL_DELAY", "0.5"))
CONVERSATION_TTL_SECONDS = int(os.getenv("CONVERSATION_TTL_SECONDS", "3600"))
QUICK_LIST_ENABLED = os.getenv("QUICK_LIST_ENABLED", "true").lower() in ("1", "true", "yes")

# Persona Configuration
DISPLAY_TIMEZONE = os.getenv("DISPLAY_TIMEZONE", "Asia/Dhaka")
PERSONA_MARKER = os.getenv("PERSONA_MARKER", "boss")
REACTION_EMOJIS = ["😊", "👍", "✅", "📝", "📋", "🗓️", "⏰", "🔍", "👌", "💪"]

# Priority band: High > 8, Medium 5-8, Low < 5
PRIORITY_MIN = 1
PRIORITY_MAX = 10
DEFAULT_PRIORITY = 3

# Observability
EVENT_LOG_FILE = os.getenv("EVENT_LOG_FILE")

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
