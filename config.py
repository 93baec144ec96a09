"""
Minutes Extraction Configuration Module
Loads settings from .env file and defines pipeline constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# =============================================================================
# API Keys
# =============================================================================
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
STRUCTURING_PROVIDER = os.getenv("STRUCTURING_PROVIDER", "gemini")  # "gemini" or "openai"

# =============================================================================
# Model Configuration
# =============================================================================
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")  # For structuring (Gemini)
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")  # For structuring (OpenAI)
EXTRACT_TEMPERATURE = float(os.getenv("EXTRACT_TEMPERATURE", "0.1"))
EXTRACT_MAX_TOKENS = int(os.getenv("EXTRACT_MAX_TOKENS", "4000"))
EXTRACT_TIMEOUT = int(os.getenv("EXTRACT_TIMEOUT", "180"))  # Seconds per structuring call

# =============================================================================
# Pipeline Parameters
# =============================================================================
PAGE_LIMIT = int(os.getenv("PAGE_LIMIT", "15"))  # Pages rasterized per document
DPI = int(os.getenv("DPI", "200"))  # Resolution for PDF to image conversion
MAX_EXTRACT_ATTEMPTS = 2  # First attempt + one self-correcting retry
EVIDENCE_MAX_CHARS = 200
SHORT_ID_LENGTH = 8
MAX_UPLOAD_BYTES = 50 * 1024 * 1024

# =============================================================================
# OCR Configuration
# =============================================================================
OCR_LANGS = os.getenv("OCR_LANGS", "tam+eng")
OCR_MAX_WORKERS = int(os.getenv("OCR_MAX_WORKERS", "4"))
OCR_TIMEOUT = int(os.getenv("OCR_TIMEOUT", "120"))  # Seconds per page, 0 disables

# =============================================================================
# Paths
# =============================================================================
BASE_DIR = Path(__file__).parent
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "output")))
STORE_DIR = Path(os.getenv("STORE_DIR", str(OUTPUT_DIR / "extracts")))
BLOB_DIR = Path(os.getenv("BLOB_DIR", str(OUTPUT_DIR / "blobs")))

# Ensure output directory exists
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# =============================================================================
# Validation
# =============================================================================
def validate_config() -> dict:
    """Validate configuration and return status."""
    issues = []

    if STRUCTURING_PROVIDER not in ("gemini", "openai"):
        issues.append(f"STRUCTURING_PROVIDER must be 'gemini' or 'openai', got '{STRUCTURING_PROVIDER}'")

    if STRUCTURING_PROVIDER == "gemini" and not GOOGLE_API_KEY:
        issues.append("GOOGLE_API_KEY is not set in .env file")

    if STRUCTURING_PROVIDER == "openai" and not OPENAI_API_KEY:
        issues.append("OPENAI_API_KEY is required when STRUCTURING_PROVIDER=openai")

    if PAGE_LIMIT < 1:
        issues.append("PAGE_LIMIT must be at least 1")

    return {
        "valid": len(issues) == 0,
        "issues": issues,
        "config": {
            "provider": STRUCTURING_PROVIDER,
            "structuring_model": GEMINI_MODEL if STRUCTURING_PROVIDER == "gemini" else OPENAI_MODEL,
            "page_limit": PAGE_LIMIT,
            "ocr_langs": OCR_LANGS,
            "dpi": DPI,
            "store_dir": str(STORE_DIR),
        }
    }
