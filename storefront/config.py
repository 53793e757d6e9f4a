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
Checkout configuration.

Settings are read from the process environment, after loading a local
``.env`` file when one exists:

    STOREFRONT_API_URL=http://localhost:10999
    STOREFRONT_API_TOKEN=...
    STOREFRONT_ORDER_RETRIES=2
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .constants import Constants

logger = logging.getLogger(__name__)

constants = Constants()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {raw!r}, using {default}")
        return default


class CheckoutSettings(BaseModel):
    """Runtime settings for the checkout flow and the storefront backend."""

    api_url: str = Field(constants.DEFAULT_API_URL, description="Base URL of the storefront backend")
    api_token: Optional[str] = Field(None, description="Bearer token sent to the backend")
    currency: str = constants.DEFAULT_CURRENCY
    merchant_display_name: str = constants.MERCHANT_DISPLAY_NAME

    intent_timeout: float = Field(constants.DEFAULT_INTENT_TIMEOUT, gt=0)
    authorization_timeout: float = Field(constants.DEFAULT_AUTHORIZATION_TIMEOUT, gt=0)
    order_timeout: float = Field(constants.DEFAULT_ORDER_TIMEOUT, gt=0)

    order_submit_retries: int = Field(
        constants.DEFAULT_ORDER_RETRIES,
        ge=0,
        description="Extra order submissions attempted with the same payment reference",
    )
    order_retry_backoff: float = Field(constants.DEFAULT_ORDER_RETRY_BACKOFF, ge=0)

    host: str = constants.DEFAULT_HOST
    port: int = constants.DEFAULT_PORT

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "CheckoutSettings":
        """Build settings from environment variables."""
        if dotenv:
            load_dotenv()

        return cls(
            api_url=os.getenv(constants.ENV_API_URL, constants.DEFAULT_API_URL),
            api_token=os.getenv(constants.ENV_API_TOKEN) or None,
            currency=os.getenv(constants.ENV_CURRENCY, constants.DEFAULT_CURRENCY),
            merchant_display_name=os.getenv(
                constants.ENV_MERCHANT_NAME, constants.MERCHANT_DISPLAY_NAME
            ),
            intent_timeout=_env_float(constants.ENV_INTENT_TIMEOUT, constants.DEFAULT_INTENT_TIMEOUT),
            authorization_timeout=_env_float(
                constants.ENV_AUTHORIZATION_TIMEOUT, constants.DEFAULT_AUTHORIZATION_TIMEOUT
            ),
            order_timeout=_env_float(constants.ENV_ORDER_TIMEOUT, constants.DEFAULT_ORDER_TIMEOUT),
            order_submit_retries=_env_int(constants.ENV_ORDER_RETRIES, constants.DEFAULT_ORDER_RETRIES),
            order_retry_backoff=_env_float(
                constants.ENV_ORDER_RETRY_BACKOFF, constants.DEFAULT_ORDER_RETRY_BACKOFF
            ),
            host=os.getenv(constants.ENV_HOST, constants.DEFAULT_HOST),
            port=_env_int(constants.ENV_PORT, constants.DEFAULT_PORT),
        )
