"""
Configuration Module for code-preview-builder Backend

This module provides centralized configuration.
All storage names, model settings, preview policy and server settings are defined here.
"""

import os
from pathlib import Path
from typing import List

# ==============================================
# BASE PATHS
# ==============================================

# Base directory (backend folder)
BASE_DIR = Path(__file__).parent.resolve()

# Project root (parent of backend)
PROJECT_ROOT = BASE_DIR.parent

# Prompt templates live next to the code
TEMPLATES_DIR = BASE_DIR / "templates"
PROMPT_CONFIG_PATH = TEMPLATES_DIR / "prompt_config.yaml"

# ==============================================
# STORAGE CONFIGURATION
# ==============================================

# Store backend: "s3" (AWS S3 or any S3-compatible endpoint such as R2) or "memory"
STORE_BACKEND = os.getenv('STORE_BACKEND', 's3')

# Custom endpoint for S3-compatible stores (e.g. https://<account>.r2.cloudflarestorage.com)
S3_ENDPOINT_URL = os.getenv('S3_ENDPOINT_URL') or None

AWS_PROFILE = os.getenv('AWS_PROFILE') or None
AWS_DEFAULT_REGION = os.getenv('AWS_DEFAULT_REGION', 'auto')

# Small JSON records: project metadata, interaction logs
METADATA_BUCKET = os.getenv('METADATA_BUCKET', 'code-ai-users')

# Larger blobs: generated projects, editor workspaces, preview snapshots
WORKSPACE_BUCKET = os.getenv('WORKSPACE_BUCKET', 'user-workspaces')

# ==============================================
# MODEL CONFIGURATION
# ==============================================

CF_ACCOUNT_ID = os.getenv('CF_ACCOUNT_ID', '')
CF_API_TOKEN = os.getenv('CF_API_TOKEN', '')
CF_API_BASE = os.getenv('CF_API_BASE', 'https://api.cloudflare.com/client/v4')

MODEL_NAME = os.getenv('MODEL_NAME', '@cf/deepseek-ai/deepseek-coder-6.7b-instruct')
MODEL_TIMEOUT = int(os.getenv('MODEL_TIMEOUT', '120'))

# Token budgets per task
CHAT_MAX_TOKENS = 4000
CHAT_TEMPERATURE = 0.7
CHAT_CONTEXT_MESSAGES = 6
GENERATE_MAX_TOKENS = 6000
FIX_MAX_TOKENS = 4000

# Interaction logs are kept for 30 days
INTERACTION_LOG_RETENTION_DAYS = 30

# ==============================================
# PREVIEW CONFIGURATION
# ==============================================

# Advisory lifetime of a preview session
PREVIEW_TTL_HOURS = int(os.getenv('PREVIEW_TTL_HOURS', '24'))

# When true, expired sessions are treated as missing on read
PREVIEW_ENFORCE_EXPIRY = os.getenv('PREVIEW_ENFORCE_EXPIRY', 'false').lower() == 'true'

# Runtimes loaded inside the frame for component-based projects
REACT_RUNTIME_URL = os.getenv(
    'REACT_RUNTIME_URL',
    'https://unpkg.com/react@18/umd/react.development.js'
)
REACT_DOM_RUNTIME_URL = os.getenv(
    'REACT_DOM_RUNTIME_URL',
    'https://unpkg.com/react-dom@18/umd/react-dom.development.js'
)
BABEL_RUNTIME_URL = os.getenv(
    'BABEL_RUNTIME_URL',
    'https://unpkg.com/@babel/standalone/babel.min.js'
)

# ==============================================
# SERVER CONFIGURATION
# ==============================================

API_PORT = int(os.getenv('API_PORT', '8000'))
API_HOST = os.getenv('API_HOST', '0.0.0.0')

# Public base URL used to build preview links
BASE_URL = os.getenv('BASE_URL', f'http://localhost:{API_PORT}')

# CORS origins (comma separated, "*" for any)
CORS_ORIGINS: List[str] = [
    origin.strip() for origin in os.getenv('CORS_ORIGINS', '*').split(',') if origin.strip()
]
CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = ["Content-Type", "Authorization", "X-User-ID"]

# Logging level
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

# ==============================================
# LOGGING CONFIGURATION
# ==============================================

LOG_DIR = Path(os.getenv('LOG_DIR', str(PROJECT_ROOT / "logs")))
LOG_FILE = LOG_DIR / "code-preview-builder.log"


def setup_logging():
    """Configure centralized logging to both console and file."""
    import logging
    from logging.handlers import RotatingFileHandler

    # Create formatter
    formatter = logging.Formatter(
        '[%(asctime)s] [%(name)s] %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, LOG_LEVEL))

    # Clear existing handlers
    root_logger.handlers = []

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, LOG_LEVEL))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # File handler (rotating, max 10MB, keep 5 backups)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=10*1024*1024,
        backupCount=5
    )
    file_handler.setLevel(getattr(logging, LOG_LEVEL))
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # Reduce noise from AWS and HTTP libraries - only show WARNING+
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    logging.info(f"Logging initialized - Console + File: {LOG_FILE}")

# ==============================================
# HELPER FUNCTIONS
# ==============================================

def get_preview_url(session_id: str) -> str:
    """Get the public URL that renders a preview session."""
    return f"{BASE_URL.rstrip('/')}/preview/{session_id}"


def get_model_endpoint() -> str:
    """Get the Workers AI run endpoint for the configured model."""
    return f"{CF_API_BASE}/accounts/{CF_ACCOUNT_ID}/ai/run/{MODEL_NAME}"


def print_config():
    """Print current configuration."""
    print("=" * 60)
    print("code-preview-builder Configuration")
    print("=" * 60)
    print(f"Base Directory:      {BASE_DIR}")
    print(f"Store Backend:       {STORE_BACKEND}")
    print(f"S3 Endpoint:         {S3_ENDPOINT_URL or 'default'}")
    print(f"Metadata Bucket:     {METADATA_BUCKET}")
    print(f"Workspace Bucket:    {WORKSPACE_BUCKET}")
    print(f"Model:               {MODEL_NAME}")
    print(f"Preview TTL (hours): {PREVIEW_TTL_HOURS}")
    print(f"Enforce Expiry:      {PREVIEW_ENFORCE_EXPIRY}")
    print(f"Backend Port:        {API_PORT}")
    print(f"Log Level:           {LOG_LEVEL}")
    print("=" * 60)
