"""
Flask web server for Platform Roundup.

Routes
──────
GET    /api/cache?vertical=...    Cache summary for a vertical (JSON)
DELETE /api/cache/<name>          Remove one platform from both caches (JSON)
DELETE /api/cache                 Clear both caches (JSON)
POST   /api/research              SSE: research platforms, then the research list
POST   /api/reviews               SSE: research + write and cache reviews
POST   /api/articles              SSE: research + full article
POST   /api/articles/assemble     Article from cached reviews (JSON, 409 if < 3)

POST bodies are an ``ArticleConfig`` in camelCase JSON. Pipeline runs are
serialised: one research / writing job at a time.
"""

from __future__ import annotations

import json
import logging
import os
import queue
import sys
import threading
from collections.abc import Callable, Iterator
from typing import Any

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, stream_with_context
from pydantic import ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from roundup.cache import cache_summary, clear_all_caches, delete_platform
from roundup.models import ArticleConfig, Vertical
from roundup.pipeline import Pipeline, build_pipeline

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

_run_lock = threading.Lock()
_pipeline_lock = threading.Lock()

_DONE = object()


def get_pipeline() -> Pipeline:
    """Return the app's pipeline, building it from the environment on first use.

    Tests install their own via ``app.config["PIPELINE"]``.
    """
    with _pipeline_lock:
        pipeline = app.config.get("PIPELINE")
        if pipeline is None:
            pipeline = build_pipeline(Settings())
            app.config["PIPELINE"] = pipeline
        return pipeline


def _parse_config() -> ArticleConfig:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    config = ArticleConfig.model_validate(payload)
    if not config.platforms:
        raise ValueError("At least one platform is required")
    return config


def _sse(payload: Any) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _stream_job(job: Callable[[Callable[[str, str], None]], Any], label: str) -> Response:
    """Run *job* in a worker thread and stream its progress as SSE.

    SSE events emitted:
      {"type": "progress", "phase": "...", "detail": "..."}
      {"type": "result",   "data": {...}}
      {"type": "error",    "message": "..."}
    followed by ``data: [DONE]``.
    """
    events: queue.Queue = queue.Queue()

    def on_progress(phase: str, detail: str = "") -> None:
        events.put({"type": "progress", "phase": phase, "detail": detail})

    def worker() -> None:
        try:
            with _run_lock:
                result = job(on_progress)
            events.put({"type": "result", "data": result})
        except Exception as exc:
            logger.exception("%s failed", label)
            events.put({"type": "error", "message": str(exc)})
        finally:
            events.put(_DONE)

    threading.Thread(target=worker, name=label, daemon=True).start()

    def generate() -> Iterator[str]:
        while True:
            event = events.get()
            if event is _DONE:
                break
            yield _sse(event)
        yield "data: [DONE]\n\n"

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# ── Cache API ──────────────────────────────────────────────────────────────

@app.route("/api/cache")
def get_cache_summary():
    """Return research/review counts and whether an article can be assembled."""
    try:
        vertical = Vertical(request.args.get("vertical", Vertical.GAMBLING.value))
    except ValueError:
        return jsonify({"error": "vertical must be 'gambling' or 'crypto'"}), 400
    pipeline = get_pipeline()
    summary = cache_summary(vertical, pipeline.research_cache, pipeline.review_cache)
    return jsonify(summary.to_json_dict())


@app.route("/api/cache/<path:platform_name>", methods=["DELETE"])
def delete_cached_platform(platform_name: str):
    """Forget a platform so its next run researches it again."""
    pipeline = get_pipeline()
    delete_platform(platform_name, pipeline.research_cache, pipeline.review_cache)
    return jsonify({"deleted": platform_name})


@app.route("/api/cache", methods=["DELETE"])
def clear_cache():
    pipeline = get_pipeline()
    clear_all_caches(pipeline.research_cache, pipeline.review_cache)
    return jsonify({"cleared": True})


# ── Research & writing streams ─────────────────────────────────────────────

@app.route("/api/research", methods=["POST"])
def research_endpoint():
    try:
        config = _parse_config()
    except (ValueError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400
    pipeline = get_pipeline()

    def job(on_progress):
        research = pipeline.assembler.research_platforms(config, on_progress)
        return [r.to_json_dict() for r in research]

    return _stream_job(job, "research")


@app.route("/api/reviews", methods=["POST"])
def reviews_endpoint():
    try:
        config = _parse_config()
    except (ValueError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400
    pipeline = get_pipeline()

    def job(on_progress):
        result = pipeline.assembler.generate_reviews_only(config, on_progress)
        return {
            "platformResearch": [r.to_json_dict() for r in result.platform_research],
            "platformReviews": [r.to_json_dict() for r in result.platform_reviews],
        }

    return _stream_job(job, "reviews")


@app.route("/api/articles", methods=["POST"])
def article_endpoint():
    """Research every platform, then write the full article.

    Optional body field ``competitorHeadings`` (list of H2 strings) steers
    additional-section suggestions.
    """
    try:
        config = _parse_config()
    except (ValueError, ValidationError) as exc:
        return jsonify({"error": str(exc)}), 400
    headings = (request.get_json(silent=True) or {}).get("competitorHeadings") or None
    pipeline = get_pipeline()

    def job(on_progress):
        research = pipeline.assembler.research_platforms(config, on_progress)
        article = pipeline.assembler.generate_full_article(
            config, research, competitor_headings=headings, on_progress=on_progress
        )
        return {
            "platformResearch": [r.to_json_dict() for r in research],
            "article": article.to_json_dict(),
        }

    return _stream_job(job, "article")


@app.route("/api/articles/assemble", methods=["POST"])
def assemble_endpoint():
    """Assemble an article from cached reviews; 409 when fewer than three exist."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    try:
        config = ArticleConfig.model_validate(payload)
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400

    pipeline = get_pipeline()
    try:
        with _run_lock:
            article = pipeline.assembler.assemble_article_from_cache(config)
    except Exception as exc:
        logger.exception("Assembly failed")
        return jsonify({"error": str(exc)}), 502

    if article is None:
        summary = cache_summary(config.vertical, pipeline.research_cache, pipeline.review_cache)
        return jsonify({
            "error": "At least 3 cached reviews are required to assemble an article",
            "reviewCount": summary.review_count,
        }), 409
    return jsonify(article.to_json_dict())


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    settings.validate()
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
