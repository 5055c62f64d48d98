from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.error import URLError
from urllib.request import Request, urlopen

from config import get_settings
from errors import ValidationError
from models import AppMode

logger = logging.getLogger(__name__)

PIN_RE = re.compile(r"^\d{4}$")
PIN_ACTIONS = ("create", "validate")


def validate_pin_format(pin: str) -> str:
    pin = (pin or "").strip()
    if not PIN_RE.match(pin):
        raise ValidationError("PIN must have exactly 4 digits")
    return pin


class PinValidatorUnavailable(RuntimeError):
    pass


class ModePinClient:
    """Talks to the external PIN validator; hashing and storage live there."""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.url = url if url is not None else settings.pin_validator_url
        self.timeout = timeout if timeout is not None else settings.pin_timeout_secs

    def validate(self, pin: str, action: str = "validate") -> bool:
        pin = validate_pin_format(pin)
        if action not in PIN_ACTIONS:
            raise ValidationError(f"Unsupported PIN action: {action}")
        if not self.url:
            raise ValidationError("PIN validation is not configured")

        body = json.dumps({"pin": pin, "action": action}).encode("utf-8")
        req = Request(
            self.url,
            data=body,
            method="POST",
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
            },
        )
        try:
            with urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (URLError, TimeoutError, json.JSONDecodeError) as exc:
            raise PinValidatorUnavailable("PIN validator request failed") from exc

        try:
            return bool(payload["valid"])
        except (KeyError, TypeError) as exc:
            raise PinValidatorUnavailable("Unexpected PIN validator response") from exc


@dataclass(frozen=True)
class ModeSwitchResult:
    valid: bool
    mode: Optional[AppMode]


class ModeService:
    def __init__(self, client: Optional[ModePinClient] = None) -> None:
        self.client = client or ModePinClient()

    def switch_mode(
        self, pin: str, target: AppMode, action: str = "validate"
    ) -> ModeSwitchResult:
        valid = self.client.validate(pin, action)
        logger.info(
            "mode_switch: target=%s action=%s valid=%s", target.value, action, valid
        )
        if not valid:
            return ModeSwitchResult(valid=False, mode=None)
        return ModeSwitchResult(valid=True, mode=target)
