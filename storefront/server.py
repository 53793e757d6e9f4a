# Copyright 2026 Storefront Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Storefront Backend Server

Reference implementation of the services the checkout flow talks to:
1. Payment intents (client secrets for the payment sheet)
2. Orders (idempotent on the payment reference)
3. Enrollment lesson progress

Usage:
    python -m storefront.server
"""

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CheckoutSettings
from .routes import router as storefront_router

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront Backend",
    description="Payment intents, orders and enrollment progress for the storefront app",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(storefront_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Storefront Backend"}


def run_server(host: str = None, port: int = None):
    """Run the backend with uvicorn; defaults come from the environment."""
    settings = CheckoutSettings.from_env()
    host = host or settings.host
    port = port or settings.port

    logger.info(f"Starting Storefront Backend on http://{host}:{port}")
    logger.info("Available endpoints:")
    logger.info("  - GET   /health - Health check")
    logger.info("  - POST  /api/payments/intent - Create payment intent")
    logger.info("  - POST  /api/orders - Place order")
    logger.info("  - GET   /api/orders - Purchase history")
    logger.info("  - GET   /api/orders/{order_id} - Order details")
    logger.info("  - POST  /api/enrollments/{course_id} - Enroll in course")
    logger.info("  - PATCH /api/enrollments/{course_id} - Update lesson progress")

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_server()
