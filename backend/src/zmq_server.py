import json
import logging
import time
import uuid

import numpy as np
import sentry_sdk
import zmq

from effects import registry
from effects.fx.pixelsort import EFFECT_ID as PIXELSORT_ID
from engine.codec import decode_b64, decode_png, encode_b64_png
from engine.container import EffectContainer
from engine.determinism import DEFAULT_SEED
from security import validate_image, validate_mask, validate_payload

logger = logging.getLogger(__name__)

# 1 MB would not fit a single HD frame; images travel base64-encoded
MAX_MESSAGE_BYTES = 128 * 1024 * 1024

_INVALID_FORMAT = {"ok": False, "error": "Invalid message format"}


def _error(msg_id: str | None, error: str) -> dict:
    return {"id": msg_id, "ok": False, "error": error}


def _parse_message(raw: bytes) -> dict | None:
    """Decode a request. None for bad UTF-8, bad JSON, or a non-object."""
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    return message if isinstance(message, dict) else None


class ZMQServer:
    def __init__(self):
        self.context = zmq.Context()
        self.socket = self.context.socket(zmq.REP)
        self.socket.setsockopt(zmq.MAXMSGSIZE, MAX_MESSAGE_BYTES)
        self.port = self.socket.bind_to_random_port("tcp://127.0.0.1")
        # Separate ping socket stays responsive during a long sort pass
        self.ping_socket = self.context.socket(zmq.REP)
        self.ping_socket.setsockopt(zmq.MAXMSGSIZE, 4096)
        self.ping_port = self.ping_socket.bind_to_random_port("tcp://127.0.0.1")
        # Every request must carry this token
        self.token = str(uuid.uuid4())
        self.start_time = time.time()
        self.running = False
        self.last_frame_ms = 0.0
        self.frames_sorted = 0

    def reset_state(self):
        """Clear per-session counters without closing sockets/context.

        Used by session-scoped test fixtures to reset between tests
        while keeping the server running.
        """
        self.last_frame_ms = 0.0
        self.frames_sorted = 0

    def _validate_token(self, message: dict) -> str | None:
        """Validate auth token. Returns error message or None if valid."""
        if message.get("_token") != self.token:
            return "invalid or missing auth token"
        return None

    def _make_ping_response(self, msg_id: str | None) -> dict:
        return {
            "id": msg_id,
            "status": "alive",
            "uptime_s": round(time.time() - self.start_time, 1),
            "last_frame_ms": self.last_frame_ms,
        }

    def handle_message(self, message: dict) -> dict:
        cmd = message.get("cmd")
        msg_id = message.get("id")

        token_err = self._validate_token(message)
        if token_err:
            return _error(msg_id, token_err)

        if cmd == "ping":
            return self._make_ping_response(msg_id)
        elif cmd == "shutdown":
            self.running = False
            return {"id": msg_id, "ok": True}
        elif cmd == "list_effects":
            return {"id": msg_id, "ok": True, "effects": registry.list_all()}
        elif cmd == "pixelsort":
            return self._handle_pixelsort(message, msg_id)
        elif cmd == "stats":
            return {
                "id": msg_id,
                "ok": True,
                "frames_sorted": self.frames_sorted,
                "last_frame_ms": self.last_frame_ms,
            }
        else:
            return _error(msg_id, f"unknown: {cmd}")

    def _decode_request(self, message: dict) -> tuple[np.ndarray, np.ndarray | None]:
        """Decode image (+ optional mask). Raises ValueError with a client message."""
        errors = validate_payload(message.get("image"), "image")
        if errors:
            raise ValueError("; ".join(errors))
        frame = decode_png(decode_b64(message["image"]))
        errors = validate_image(frame)
        if errors:
            raise ValueError("; ".join(errors))

        mask = None
        if message.get("mask") is not None:
            errors = validate_payload(message["mask"], "mask")
            if errors:
                raise ValueError("; ".join(errors))
            mask = decode_png(decode_b64(message["mask"]), grayscale=True)
            errors = validate_mask(mask, frame)
            if errors:
                raise ValueError("; ".join(errors))
        return frame, mask

    def _handle_pixelsort(self, message: dict, msg_id: str | None) -> dict:
        params = message.get("params", {})
        if not isinstance(params, dict):
            return _error(msg_id, "params must be an object")
        frame_index = message.get("frame_index", 0)
        if not isinstance(frame_index, int) or frame_index < 0:
            return _error(msg_id, "frame_index must be a non-negative integer")
        mix = message.get("mix", 1.0)
        if (
            isinstance(mix, bool)
            or not isinstance(mix, (int, float))
            or not 0.0 <= mix <= 1.0
        ):
            return _error(msg_id, "mix must be a number between 0 and 1")
        project_seed = message.get("project_seed", DEFAULT_SEED)

        try:
            frame, mask = self._decode_request(message)
        except ValueError as e:
            return _error(msg_id, str(e))

        params = dict(params)
        if mask is not None:
            params["_mask"] = mask
        params["_mix"] = mix

        try:
            t0 = time.time()
            info = registry.get(PIXELSORT_ID)
            container = EffectContainer(info["fn"], PIXELSORT_ID)
            h, w = frame.shape[:2]
            output, _ = container.process(
                frame,
                params,
                None,
                frame_index=frame_index,
                project_seed=project_seed,
                resolution=(w, h),
            )
            if container.last_error is not None:
                return _error(msg_id, "Effect failed; frame returned unchanged")
            frame_b64 = encode_b64_png(output)
            self.last_frame_ms = round((time.time() - t0) * 1000, 2)
            self.frames_sorted += 1
            return {
                "id": msg_id,
                "ok": True,
                "image": frame_b64,
                "width": w,
                "height": h,
            }
        except Exception as e:
            sentry_sdk.capture_exception(e)
            logger.error("Pixelsort handler error: %s", type(e).__name__)
            return _error(msg_id, "Internal processing error")

    def run(self):
        self.running = True
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self.ping_socket, zmq.POLLIN)
        while self.running:
            events = dict(poller.poll(timeout=500))

            # Handle ping socket first (lightweight, never blocked)
            if self.ping_socket in events:
                try:
                    message = _parse_message(self.ping_socket.recv())
                except zmq.ZMQError:
                    logger.error("ZMQ error on ping socket")
                    break  # socket state is unrecoverable
                if message is None:
                    self.ping_socket.send_json(_INVALID_FORMAT)
                else:
                    msg_id = message.get("id")
                    token_err = self._validate_token(message)
                    if token_err:
                        self.ping_socket.send_json(_error(msg_id, token_err))
                    else:
                        self.ping_socket.send_json(self._make_ping_response(msg_id))

            if self.socket in events:
                try:
                    message = _parse_message(self.socket.recv())
                except zmq.ZMQError:
                    logger.error("ZMQ error on main socket")
                    break
                if message is None:
                    # MUST send reply before next recv (REP protocol)
                    self.socket.send_json(_INVALID_FORMAT)
                    continue

                try:
                    response = self.handle_message(message)
                except Exception as e:
                    sentry_sdk.capture_exception(e)
                    logger.error("Unhandled handler error: %s", type(e).__name__)
                    response = {"ok": False, "error": "Internal processing error"}

                self.socket.send_json(response)
        self.close()

    def close(self):
        self.ping_socket.close()
        self.socket.close()
        self.context.term()
