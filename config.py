#!/usr/bin/env python3
"""
Configuration settings for Court Case Monitor
Every value can be overridden with an environment variable of the same name
"""

import os

# === Elasticsearch Configuration ===
ES_HOST = os.getenv("ES_HOST", "http://localhost:9200")
ES_CASES_INDEX = os.getenv("ES_CASES_INDEX", "court_cases")
ES_USERS_INDEX = os.getenv("ES_USERS_INDEX", "court_users")
ES_SUBSCRIPTIONS_INDEX = os.getenv("ES_SUBSCRIPTIONS_INDEX", "court_subscriptions")

# === Case Source Configuration ===
CASE_SOURCE_URL = os.getenv(
    "CASE_SOURCE_URL",
    "https://allahabadhighcourt.in/apps/status_ccms/index.php/get_CaseDetails"
)
FETCH_TIMEOUT = int(os.getenv("FETCH_TIMEOUT", "30"))
FETCH_RETRY_ATTEMPTS = int(os.getenv("FETCH_RETRY_ATTEMPTS", "3"))
FETCH_RETRY_DELAY = float(os.getenv("FETCH_RETRY_DELAY", "1"))  # Doubles after every failed attempt

# === Messaging Configuration ===
WHATSAPP_API_URL = os.getenv("WHATSAPP_API_URL", "http://198.38.87.182/api/whatsapp/send-bulk")
WHATSAPP_API_KEY = os.getenv("WHATSAPP_API_KEY", "")
WHATSAPP_TIMEOUT = int(os.getenv("WHATSAPP_TIMEOUT", "30"))
ADMIN_NUMBERS = [n.strip() for n in os.getenv("ADMIN_NUMBERS", "").split(",") if n.strip()]

# === Monitoring Configuration ===
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "5"))  # Cases fetched per batch
BATCH_DELAY = float(os.getenv("BATCH_DELAY", "2"))  # Seconds between batches
MESSAGE_DELAY = float(os.getenv("MESSAGE_DELAY", "1"))  # Seconds between consecutive messages
CHECK_INTERVAL = int(os.getenv("CHECK_INTERVAL", str(2 * 60 * 60)))  # Run a cycle every 2 hours
CASE_CHECK_INTERVAL_MINUTES = int(os.getenv("CASE_CHECK_INTERVAL_MINUTES", "120"))
CHANGE_HISTORY_LIMIT = 50  # Change history entries kept per case

# === Presentation ===
COURT_NAME = os.getenv("COURT_NAME", "Allahabad High Court")
TIMEZONE = os.getenv("TIMEZONE", "Asia/Kolkata")

# === API Configuration ===
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8006"))
API_TITLE = "Court Case Monitor API"
API_DESCRIPTION = "Monitors court case status and notifies subscribers of changes"
API_VERSION = "1.0.0"

# === Logging Configuration ===
LOG_FILE = os.getenv("LOG_FILE", "case_monitor.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
