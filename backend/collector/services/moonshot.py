import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from collector.core.config import settings
from collector.core.errors import UpstreamError

logger = logging.getLogger(__name__)


class MoonshotClient:
    """Client for the Moonshot account balance endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.moonshot_api_key
        self.api_base = (api_base or settings.moonshot_api_base).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.upstream_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def fetch_balance(self) -> Dict[str, Any]:
        """Fetch the current balance.

        Returns:
            {available_balance, cash_balance, voucher_balance}

        Raises:
            UpstreamError: missing key, timeout, transport failure, non-2xx
                or a payload without a truthy ``status``
        """
        if not self.configured:
            raise UpstreamError("MOONSHOT_API_KEY not configured")

        url = f"{self.api_base}/users/me/balance"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url, headers=headers) as response:
                    if response.status >= 400:
                        text = await response.text()
                        raise UpstreamError(
                            f"Moonshot balance API returned {response.status}: {text[:200]}"
                        )
                    payload = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise UpstreamError(
                f"Moonshot balance API timed out after {self.timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            raise UpstreamError(f"Moonshot balance API unreachable: {e}") from e
        except ValueError as e:
            raise UpstreamError(f"Moonshot balance API returned invalid JSON: {e}") from e

        return self._parse_balance(payload)

    def _parse_balance(self, payload: Any) -> Dict[str, Any]:
        """Validate the Moonshot envelope and pull out the balance fields."""
        if not isinstance(payload, dict) or not payload.get("status"):
            message = payload.get("message") if isinstance(payload, dict) else None
            raise UpstreamError(message or "Failed to fetch balance")

        data = payload.get("data") or {}
        available = data.get("available_balance")
        if not isinstance(available, (int, float)) or isinstance(available, bool):
            raise UpstreamError("Balance payload missing available_balance")

        return {
            "available_balance": float(available),
            "cash_balance": data.get("cash_balance"),
            "voucher_balance": data.get("voucher_balance"),
        }
