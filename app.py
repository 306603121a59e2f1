#!/usr/bin/env python3
"""
TrendMint - control surface for the trend-to-token agent
FastAPI application exposing status, stats and admin controls
"""

import os
import sys
import traceback
from dataclasses import asdict
from datetime import datetime, UTC
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Header, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from config import ConfigurationError, get_config, update_config
from db.session import init_db, get_db_session
from db.models import Action, MintedToken
from services.logging_utils import get_logger
from services.normalizer import normalize_post
from services.observability import metrics_router
from services.orchestrator import Orchestrator
from services.scoring import BATCH_LIMIT, calculate_trending_score

# Import runner for background tasks
import runner

# Initialize logger
logger = get_logger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="TrendMint Agent",
    description="Turns viral social posts into replies and token launches",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(metrics_router)

# Global state
config = get_config()

# Pydantic models for API
class ToggleRequest(BaseModel):
    live: bool

class AnalyzeRequest(BaseModel):
    text: str
    author_handle: str = "unknown"
    likes: int = 0
    reposts: int = 0
    replies: int = 0
    views: Optional[int] = None
    hashtags: List[str] = Field(default_factory=list)

class BatchAnalyzeRequest(BaseModel):
    posts: List[AnalyzeRequest] = Field(min_length=1, max_length=BATCH_LIMIT)

# Dependency for admin auth
async def verify_admin_token(x_admin_token: Optional[str] = Header(None)):
    if not x_admin_token or x_admin_token != config.ADMIN_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid admin token")
    return True

def _require_orchestrator() -> Orchestrator:
    if runner.orchestrator is None:
        raise HTTPException(status_code=503, detail="Pipeline not started")
    return runner.orchestrator

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {"ok": True, "live": config.LIVE, "timestamp": datetime.now(UTC).isoformat()}

@app.get("/api/stats")
async def get_stats():
    """Pipeline counters and reply budget"""
    return _require_orchestrator().get_stats()

@app.get("/api/scheduler")
async def get_scheduler():
    return runner.get_scheduler_status()

@app.post("/api/toggle")
async def toggle_live_mode(request: ToggleRequest, _: bool = Depends(verify_admin_token)):
    """Toggle LIVE mode on/off"""
    try:
        update_config(LIVE=request.live)
        logger.info(f"LIVE mode {'activated' if config.LIVE else 'paused'}")
        return {"live": config.LIVE}
    except Exception as e:
        logger.error(f"Toggle error: {e}")
        raise HTTPException(status_code=500, detail=str(e))

def _manual_message(request: AnalyzeRequest, index: int = 0):
    return normalize_post({
        "id": f"manual-{int(datetime.now(UTC).timestamp())}-{index}",
        "text": request.text,
        "username": request.author_handle,
        "metrics": {
            "likes": request.likes,
            "reposts": request.reposts,
            "replies": request.replies,
            "views": request.views,
        },
        "hashtags": request.hashtags,
    })

def _analysis_body(analysis):
    return {
        "keywords": list(analysis.keywords),
        "sentiment": asdict(analysis.sentiment),
        "viral": {"score": analysis.viral.score, "factors": list(analysis.viral.factors)},
        "token_concept": asdict(analysis.token_concept) if analysis.token_concept else None,
    }

@app.post("/api/analyze")
async def analyze_text(request: AnalyzeRequest, _: bool = Depends(verify_admin_token)):
    """Score a post without deciding or acting on it"""
    pipeline = _require_orchestrator()
    analysis = await pipeline.scorer.analyze_trend(_manual_message(request))
    return _analysis_body(analysis)

@app.post("/api/analyze/batch")
async def analyze_batch(request: BatchAnalyzeRequest, _: bool = Depends(verify_admin_token)):
    """Score several posts and summarize them as one trend"""
    pipeline = _require_orchestrator()
    messages = [_manual_message(post, index) for index, post in enumerate(request.posts)]
    analyses = await pipeline.scorer.batch_analyze(messages, delay=0)
    return {
        "analyses": [_analysis_body(analysis) for analysis in analyses],
        "summary": calculate_trending_score(analyses),
    }

@app.get("/api/balance")
async def get_balance():
    """Native balance of the minting account"""
    pipeline = _require_orchestrator()
    result = await pipeline.chain.get_balance()
    if not result.ok:
        raise HTTPException(status_code=503, detail=result.error)
    return {"address": pipeline.chain.payer_address, "balance": str(result.value)}

@app.get("/api/actions")
async def get_actions(limit: int = 50):
    """Most recent entries of the action log"""
    with get_db_session() as session:
        actions = (
            session.query(Action)
            .order_by("created_at", descending=True)
            .limit(max(1, min(limit, 500)))
            .all()
        )
    return [
        {"id": a.id, "kind": a.kind, "meta": a.meta_json, "created_at": a.created_at.isoformat()}
        for a in actions
    ]

@app.get("/api/tokens")
async def get_tokens():
    """Tokens minted since startup"""
    with get_db_session() as session:
        tokens = session.query(MintedToken).order_by("created_at", descending=True).all()
    return [
        {**asdict(token), "created_at": token.created_at.isoformat()}
        for token in tokens
    ]

# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    try:
        logger.info("Starting TrendMint agent...")

        # Initialize action log
        init_db()

        # Start background runner
        await runner.start_scheduler()

        logger.info("TrendMint agent started successfully")

    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Startup error: {e}")
        traceback.print_exc()
        sys.exit(1)

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down TrendMint agent...")
    await runner.stop_scheduler()

if __name__ == "__main__":
    port = int(os.getenv("PORT", config.PORT))
    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=port,
        reload=config.APP_ENV == "development"
    )
