"""
Centralized configuration for Post-Op Radar.
Every env-based constant lives here; nothing else reads os.environ.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _csv(name):
    return [item.strip() for item in os.getenv(name, "").split(",") if item.strip()]


# --- Twilio ---
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_API_KEY_SID = os.getenv("TWILIO_API_KEY_SID", "")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER", "")
SMS_SEND_TIMEOUT = float(os.getenv("SMS_SEND_TIMEOUT", "10"))

# --- Demo routing ---
DEMO_MODE_ENABLED = _flag("DEMO_MODE_ENABLED")
DEMO_ROUTE_ALL_TO = os.getenv("DEMO_ROUTE_ALL_TO", "")
DEMO_TEST_ALLOWLIST = _csv("DEMO_TEST_ALLOWLIST")

# --- Storage ---
# "memory" for local development, "gcs" for deployments
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory")
GCS_BUCKET_NAME = os.getenv("GCS_BUCKET_NAME", "postop_radar_dev")
GCS_PREFIX = os.getenv("GCS_PREFIX", "")
GCS_TIMEOUT = float(os.getenv("GCS_TIMEOUT", "30"))

# --- Check-ins ---
REFERENCE_TIMEZONE = os.getenv("REFERENCE_TIMEZONE", "America/New_York")
CHECKIN_DURATION_DAYS = int(os.getenv("CHECKIN_DURATION_DAYS", "14"))
CHECKIN_SEND_AT_LOCAL = os.getenv("CHECKIN_SEND_AT_LOCAL", "09:00")
SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED", "true")

# --- Admin ---
# Bearer token for /admin and /triage; empty disables the check
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")

# --- Server ---
PORT = int(os.getenv("PORT", "8080"))
VERSION = "1.0.0"
