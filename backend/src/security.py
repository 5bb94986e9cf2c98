"""Request validation gates and PII scrubbing for the pixel sort sidecar."""

import json
import os
import re

import numpy as np

# SEC-1: Encoded payload cap (base64 text, per image)
MAX_PAYLOAD_CHARS = 64 * 1024 * 1024

# SEC-2: Decoded image cap (~8K x 8K)
MAX_IMAGE_PIXELS = 8192 * 8192

# SEC-3: Reject degenerate images outright
MIN_IMAGE_SIDE = 1


def validate_payload(data, field: str = "image") -> list[str]:
    """Validate a base64 image field before decoding. Returns list of errors."""
    errors: list[str] = []
    if not isinstance(data, str) or not data:
        errors.append(f"missing {field}")
        return errors
    if len(data) > MAX_PAYLOAD_CHARS:
        errors.append(
            f"{field} payload too large: {len(data)} chars (max {MAX_PAYLOAD_CHARS})"
        )
    return errors


def validate_image(frame: np.ndarray) -> list[str]:
    """Validate decoded image dimensions against SEC-2/SEC-3."""
    errors: list[str] = []
    h, w = frame.shape[:2]
    if h < MIN_IMAGE_SIDE or w < MIN_IMAGE_SIDE:
        errors.append(f"Image too small: {w}x{h}")
    elif h * w > MAX_IMAGE_PIXELS:
        errors.append(f"Image too large: {w}x{h} exceeds {MAX_IMAGE_PIXELS} pixels")
    return errors


def validate_mask(mask: np.ndarray, frame: np.ndarray) -> list[str]:
    """Selection mask must cover the image exactly."""
    errors: list[str] = []
    if mask.shape[:2] != frame.shape[:2]:
        errors.append(
            f"Mask size {mask.shape[1]}x{mask.shape[0]} does not match "
            f"image {frame.shape[1]}x{frame.shape[0]}"
        )
    return errors


# --- PII stripping for Sentry and crash dumps ---

_HOME = os.path.expanduser("~")
_USERNAME = os.path.basename(_HOME)
_PATH_PATTERN = re.compile(r"/Users/[^/\s]+|/home/[^/\s]+|C:\\Users\\[^\\\s]+")
_SENSITIVE_KEYS = {"_token", "token", "auth", "key", "secret", "password", "dsn"}


def _scrub_dict(d: dict):
    """Redact values for keys that look sensitive."""
    for key in list(d.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            d[key] = "<REDACTED>"


def strip_pii(event: dict, hint: dict) -> dict:
    """Sentry before_send hook. Strips home paths, usernames and tokens.

    Also used on crash dumps by diagnostics.
    """
    event_str = json.dumps(event)
    event_str = event_str.replace(_HOME, "<HOME>")
    if _USERNAME:
        event_str = event_str.replace(_USERNAME, "<USER>")
    event_str = _PATH_PATTERN.sub("<REDACTED_PATH>", event_str)
    event = json.loads(event_str)

    _scrub_dict(event.get("extra", {}))
    for ctx in event.get("contexts", {}).values():
        if isinstance(ctx, dict):
            _scrub_dict(ctx)
    return event
