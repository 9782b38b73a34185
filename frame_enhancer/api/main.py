"""
Frame Enhancer API

One shared pipeline serves every request. Its background model makes it a
single-stream object, so all pipeline calls are serialised behind a lock.
"""

import asyncio
import base64
import os
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, UploadFile, File, Query
from fastapi.responses import JSONResponse

from ..configs.processing_config import ContrastStage, ProcessingConfig
from ..configs.settings import get_settings, get_log_config
from ..core.pipeline import FramePreprocessingPipeline
from ..io import decode_image, encode_image
from ..utils.errors import ImageIOError, ValidationError
from ..utils.logging_config import get_logger, setup_logging

settings = get_settings()
setup_logging(**get_log_config(settings))

logger = get_logger(__name__)


def create_pipeline() -> FramePreprocessingPipeline:
    """Pipeline configured from the service settings"""
    clahe = settings.clahe_params()
    config = ProcessingConfig(
        CLAHE_TILES_PER_AXIS=clahe.tiles_per_axis,
        CLAHE_CLIP_LIMIT=clahe.clip_limit,
    )
    return FramePreprocessingPipeline(settings.default_pipeline_settings(), config)


pipeline = create_pipeline()
pipeline_lock = threading.Lock()

app = FastAPI(
    title=settings.app_name,
    description="Real-time camera frame preprocessing for computer-vision inference",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Global variables
startup_time = time.time()
request_count = 0


# Request counting middleware
@app.middleware("http")
async def count_requests(request, call_next):
    global request_count
    request_count += 1

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-Count"] = str(request_count)

    return response


def _run_pipeline(buffer, options):
    with pipeline_lock:
        return pipeline.process_frame(buffer, options)


def _reset_background():
    with pipeline_lock:
        pipeline.reset_background()


def _statistics():
    with pipeline_lock:
        return pipeline.get_processing_statistics()


@app.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return JSONResponse({
        "status": "healthy",
        "timestamp": time.time(),
        "uptime": time.time() - startup_time,
        "request_count": request_count,
        "version": settings.app_version,
    })


@app.get(f"{settings.api_v1_prefix}/settings")
async def get_pipeline_settings():
    """Current default stage toggles and CLAHE parameters"""
    clahe = pipeline.config.clahe_params()
    return JSONResponse({
        "pipeline": pipeline.settings.to_dict(),
        "contrast": pipeline.settings.contrast.value,
        "clahe": {
            "tiles_per_axis": clahe.tiles_per_axis,
            "clip_limit": clahe.clip_limit,
        },
        "max_processing_time": pipeline.config.MAX_PROCESSING_TIME,
    })


@app.post(f"{settings.api_v1_prefix}/preprocess")
async def preprocess_frame(
    file: UploadFile = File(...),
    enabled: Optional[bool] = Query(None, description="Run the pipeline at all"),
    denoise: Optional[bool] = Query(None, description="3x3 Gaussian denoise"),
    shadow_correction: Optional[bool] = Query(None, description="Background-model shadow correction"),
    brightness_norm: Optional[bool] = Query(None, description="Global brightness normalisation"),
    contrast: Optional[ContrastStage] = Query(None, description="Contrast stage: none, clahe or histogram_eq"),
    motion_blur_comp: Optional[bool] = Query(None, description="Unsharp-mask sharpening"),
):
    """
    Preprocess one uploaded frame; unset toggles fall back to the service defaults
    """
    try:
        # Validate file type
        if not file.content_type or not file.content_type.startswith('image/'):
            raise HTTPException(status_code=400, detail="File must be an image")

        image_data = await file.read()

        if len(image_data) == 0:
            raise HTTPException(status_code=400, detail="Empty image file")

        if len(image_data) > settings.max_image_size_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"Image file too large (max {settings.max_image_size_mb}MB)"
            )

        try:
            buffer = decode_image(image_data)
        except (ImageIOError, ValidationError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid image data: {str(e)}")

        toggles = {
            'enabled': enabled,
            'denoise': denoise,
            'shadow_correction': shadow_correction,
            'brightness_norm': brightness_norm,
            'contrast': contrast,
            'motion_blur_comp': motion_blur_comp,
        }
        processing_options = {key: value for key, value in toggles.items() if value is not None}
        processing_options['save_intermediate_steps'] = False

        # Process in executor to avoid blocking
        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(None, _run_pipeline, buffer, processing_options)

        if not result['success']:
            raise HTTPException(
                status_code=500,
                detail=f"Frame processing failed: {result.get('error', 'Unknown processing error')}"
            )

        processed = result['processed_image']
        image_base64 = base64.b64encode(encode_image(processed, ".png")).decode('utf-8')

        return JSONResponse({
            "success": True,
            "processing_time": result['processing_time'],
            "width": processed.width,
            "height": processed.height,
            "processing_steps": result['processing_steps'],
            "improvements": result['improvements'],
            "warnings": result['warnings'],
            "processed_image": image_base64,
            "metadata": {
                "filename": file.filename,
                "file_size": len(image_data),
                "content_type": file.content_type,
            }
        })

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Frame preprocessing failed: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Frame processing failed: {str(e)}")


@app.post(f"{settings.api_v1_prefix}/background/reset")
async def reset_background():
    """Forget the learned background model"""
    loop = asyncio.get_event_loop()
    await loop.run_in_executor(None, _reset_background)
    return JSONResponse({"success": True, "background_model_ready": False})


@app.get(f"{settings.api_v1_prefix}/statistics")
async def get_processing_statistics():
    """Pipeline statistics plus API-level counters"""
    try:
        stats = _statistics()

        stats["api_statistics"] = {
            "total_requests": request_count,
            "uptime_seconds": time.time() - startup_time,
            "requests_per_minute": request_count / max((time.time() - startup_time) / 60, 1)
        }

        return JSONResponse(stats)

    except Exception as e:
        logger.error(f"Failed to get processing statistics: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Statistics unavailable: {str(e)}")


# Error handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.detail,
            "status_code": exc.status_code,
            "timestamp": time.time()
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler"""
    logger.error(f"Unhandled exception: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "status_code": 500,
            "timestamp": time.time()
        }
    )


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    global startup_time
    startup_time = time.time()

    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
    logger.info(f"Default pipeline settings: {pipeline.settings.to_dict()}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info(f"Shutting down {settings.app_name}...")


@app.get("/")
async def root():
    """API root endpoint with feature overview"""
    prefix = settings.api_v1_prefix
    return JSONResponse({
        "name": settings.app_name,
        "version": settings.app_version,
        "description": "Camera frame preprocessing ahead of computer-vision inference",
        "stages": [
            "denoise",
            "shadow_correction",
            "brightness_norm",
            "clahe",
            "histogram_eq",
            "motion_blur_comp",
        ],
        "endpoints": {
            "health": "/health",
            "settings": f"{prefix}/settings",
            "preprocess": f"{prefix}/preprocess",
            "reset_background": f"{prefix}/background/reset",
            "statistics": f"{prefix}/statistics",
        },
        "documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc"
        }
    })


if __name__ == "__main__":
    uvicorn.run(
        "frame_enhancer.api.main:app",
        host=os.getenv("HOST", settings.host),
        port=int(os.getenv("PORT", settings.port)),
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
