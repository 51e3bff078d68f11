# vox_smoke/providers/voximplant.py
"""
Voximplant Outbound Provider

Starts a Voximplant scenario for an outbound PSTN call through the
``StartScenarios`` management API. The scenario receives our call id and
event URL as custom data and reports lifecycle events back to us.
"""
import json

import aiohttp
from loguru import logger

from ..config import ProviderConfig
from ..protocol import CallRequest, OutboundCallError, OutboundProvider

VOX_API_BASE = "https://api.voximplant.com/platform_api"


class VoximplantProvider(OutboundProvider):
    """
    Provider implementation for Voximplant scenarios.

    Only the HTTP status and an ``error`` object in the JSON body are
    checked; the rest of the response shape does not matter here.
    """

    def __init__(self, config: ProviderConfig):
        """
        Initialize the Voximplant provider.

        Args:
            config: Provider settings: account credentials, application,
                scenario and an optional routing rule and caller ID.
        """
        self.config = config
        self.api_url = (config.api_url or VOX_API_BASE).rstrip("/")

    def _build_form(self, request: CallRequest) -> dict[str, str]:
        custom_data = {
            "call_id": request.call_id,
            "to": request.destination,
            "event_url": request.event_url,
            "caller_id": request.caller_id or self.config.caller_id,
            "tag": request.tag,
        }
        form = {
            "account_id": self.config.account_id,
            "api_key": self.config.api_key,
            "application_id": self.config.application_id,
            "script_name": self.config.scenario_name,
            "script_custom_data": json.dumps(custom_data),
            "phone": request.destination,
            "output": "json",
        }
        if self.config.rule_name:
            form["rule_name"] = self.config.rule_name
        elif self.config.rule_id:
            form["rule_id"] = self.config.rule_id
        return form

    async def start_call(self, request: CallRequest) -> None:
        """
        Start the scenario that dials ``request.destination``.

        Raises:
            OutboundCallError: On an HTTP error status or an API-level error.
        """
        url = f"{self.api_url}/StartScenarios"
        logger.info(
            f"[voximplant] StartScenarios: app={self.config.application_id}, "
            f"script={self.config.scenario_name}, "
            f"rule={self.config.rule_name or self.config.rule_id or '(default)'}, "
            f"phone={request.destination}"
        )

        async with aiohttp.ClientSession() as session:
            async with session.post(url, data=self._build_form(request)) as resp:
                status = resp.status
                text = await resp.text()

        logger.debug(f"[voximplant] Response: HTTP {status}, body: {text[:200]}")

        if status >= 400:
            raise OutboundCallError(f"Vox StartScenarios failed: HTTP {status} - {text[:500]}")

        try:
            body = json.loads(text)
        except ValueError:
            logger.debug("[voximplant] Response is not JSON, continuing")
            return

        if isinstance(body, dict) and body.get("error"):
            error = body["error"]
            if isinstance(error, dict):
                message = error.get("msg") or json.dumps(error)
                code = error.get("code", "unknown")
            else:
                message, code = str(error), "unknown"
            raise OutboundCallError(f"Vox StartScenarios error [{code}]: {message}")
