"""CORS for the QuestCoder dashboard origins."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from questcoder.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    """Allow the configured dashboard origins to call the API with bearer tokens."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        # The gamification API only reads and posts
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
        expose_headers=["X-Request-Id", "X-RateLimit-Remaining", "X-RateLimit-Limit", "Retry-After"],
        max_age=settings.cors_max_age_seconds,
    )
