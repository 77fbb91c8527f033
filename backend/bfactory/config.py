# backend/bfactory/config.py
from __future__ import annotations
import os


def _csv(value: str) -> set[str]:
    return {item.strip() for item in value.split(",") if item.strip()}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bfactory.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bfactory.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session tokens (absolute lifetime)
    SESSION_HOURS = int(os.environ.get("SESSION_HOURS", "24"))

    CORS_ORIGINS = _csv(os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
    ))

    # Payment gateways
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")

    MTN_CONSUMER_KEY = os.environ.get("MTN_CONSUMER_KEY")
    MTN_CONSUMER_SECRET = os.environ.get("MTN_CONSUMER_SECRET")
    MTN_API_URL = os.environ.get(
        "MTN_API_URL",
        "https://sandbox.momodeveloper.mtn.com/collection/v1_0/requesttopay",
    )
    MTN_TARGET_ENVIRONMENT = os.environ.get("MTN_TARGET_ENVIRONMENT", "sandbox")

    # LLM assistant (OpenAI-compatible chat completions)
    GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
    AI_ENDPOINT = os.environ.get("AI_ENDPOINT", "https://models.inference.ai.azure.com")
    AI_MODEL = os.environ.get("AI_MODEL", "Llama-3.3-70B-Instruct")

    # Seconds; applies to every outbound gateway call
    GATEWAY_TIMEOUT = float(os.environ.get("GATEWAY_TIMEOUT", "15"))

    # Optional httpx transport override (tests inject httpx.MockTransport)
    HTTP_TRANSPORT = None

    DEBUG_SEED_ENABLED = False
