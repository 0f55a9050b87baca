"""
FastAPI layer exposing the LiDAR detector.

Endpoints:
 - GET /health
 - POST /detect
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Optional
from urllib.parse import urljoin

import boto3
from botocore.client import Config as BotoConfig
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, HttpUrl
import requests

from . import config
from .pipeline import detect_from_bytes

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="CNN LiDAR Detector Service", version="0.1.0")


class DetectRequest(BaseModel):
    depthImageUrl: HttpUrl
    heightImageUrl: HttpUrl
    scoreThreshold: Optional[float] = None


class DetectResponse(BaseModel):
    outputUrl: HttpUrl
    scoreThreshold: float
    classCounts: Dict[str, int]


def _get_s3_client():
    required = [
        settings.r2_endpoint,
        settings.r2_access_key_id,
        settings.r2_secret_access_key,
        settings.r2_bucket_name,
    ]
    if any(v is None for v in required):
        raise RuntimeError("R2 configuration is incomplete; check env vars.")
    session = boto3.session.Session()
    return session.client(
        service_name="s3",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        endpoint_url=settings.r2_endpoint,
        config=BotoConfig(signature_version="s3v4"),
    )


def _build_public_url(key: str) -> str:
    if settings.r2_public_base_url:
        return urljoin(settings.r2_public_base_url.rstrip("/") + "/", key)
    client = _get_s3_client()
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket_name, "Key": key},
        ExpiresIn=3600,
    )


def _download_image(url: str) -> bytes:
    resp = requests.get(url, timeout=(5, settings.request_timeout_seconds))
    resp.raise_for_status()
    return resp.content


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/detect", response_model=DetectResponse)
def detect(body: DetectRequest):
    try:
        depth_bytes = _download_image(str(body.depthImageUrl))
        height_bytes = _download_image(str(body.heightImageUrl))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to download input images: %s", exc)
        raise HTTPException(status_code=400, detail="Could not download input images") from exc

    score_threshold = settings.score_threshold if body.scoreThreshold is None else body.scoreThreshold

    try:
        png_bytes, class_counts = detect_from_bytes(
            depth_bytes,
            height_bytes,
            score_threshold=score_threshold,
        )
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve
    except Exception as exc:  # noqa: BLE001
        logger.exception("Detection failed: %s", exc)
        raise HTTPException(status_code=500, detail="Detection failed") from exc

    key = f"lidar-detector/{uuid.uuid4()}.png"
    try:
        client = _get_s3_client()
        client.put_object(
            Bucket=settings.r2_bucket_name,
            Key=key,
            Body=png_bytes,
            ContentType="image/png",
        )
        output_url = _build_public_url(key)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Failed to upload detection image to R2: %s", exc)
        raise HTTPException(status_code=500, detail="Upload to storage failed") from exc

    return DetectResponse(outputUrl=output_url, scoreThreshold=score_threshold, classCounts=class_counts)
