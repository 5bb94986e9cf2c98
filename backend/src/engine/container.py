"""Effect container — wraps pure effect functions with selection + mix handling."""

import logging
import math
import time

import numpy as np
import sentry_sdk

from engine.determinism import derive_seed

logger = logging.getLogger(__name__)

# Effects slower than this get a warning in the log
EFFECT_WARN_MS = 250


def _capture_with_context(e: Exception, effect_id: str, extra: dict):
    """Capture exception to Sentry with effect-level context and fingerprint dedup."""
    with sentry_sdk.new_scope() as scope:
        scope.set_tag("effect_id", effect_id)
        scope.fingerprint = ["effect-crash", effect_id, type(e).__name__]
        scope.set_context("effect", extra)
        sentry_sdk.capture_exception(e, scope=scope)


def coverage_mask(mask: np.ndarray | None) -> np.ndarray | None:
    """Normalize a selection mask to uint8 coverage (0-255).

    Float masks are read as 0.0-1.0 coverage; integer masks as 0-255.
    """
    if mask is None:
        return None
    mask = np.asarray(mask)
    if mask.ndim == 3:
        mask = mask[:, :, 0]
    if np.issubdtype(mask.dtype, np.floating):
        scaled = np.nan_to_num(mask, nan=0.0) * 255.0
        return np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
    return np.clip(mask, 0, 255).astype(np.uint8)


class EffectContainer:
    """Container that wraps an effect's apply() function.

    Pipeline: seed → selection → process → validate → mix
    Effect authors write only the processing stage; the selection mask is
    handed to the effect because sorting must exclude unselected pixels
    rather than blend them afterwards.
    """

    def __init__(self, effect_fn, effect_id: str):
        self.effect_fn = effect_fn
        self.effect_id = effect_id
        self.last_error: Exception | None = None
        self.last_elapsed_ms = 0.0

    def process(
        self,
        frame: np.ndarray,
        params: dict,
        state_in: dict | None,
        *,
        frame_index: int,
        project_seed: int,
        resolution: tuple[int, int],
    ) -> tuple[np.ndarray, dict | None]:
        self.last_error = None

        user_seed = params.get("seed", 0)
        seed = derive_seed(project_seed, self.effect_id, frame_index, user_seed)

        # NaN/Inf values are dropped so the effect falls back to its default
        effect_params = {
            k: v
            for k, v in params.items()
            if not (isinstance(v, float) and (math.isnan(v) or math.isinf(v)))
        }
        effect_params.pop("seed", None)
        selection = coverage_mask(effect_params.pop("_mask", None))
        mix = float(effect_params.pop("_mix", 1.0))
        mix = max(0.0, min(1.0, mix))

        # Context for Sentry (PII-safe: keys only, no values)
        sentry_ctx = {
            "frame_index": frame_index,
            "param_keys": list(effect_params.keys()),
            "seed": seed,
            "resolution": resolution,
            "frame_shape": list(frame.shape),
            "has_selection": selection is not None,
        }

        t0 = time.monotonic()
        try:
            wet_frame, state_out = self.effect_fn(
                frame,
                effect_params,
                state_in,
                frame_index=frame_index,
                seed=seed,
                resolution=resolution,
                selection=selection,
            )
        except Exception as e:
            self.last_error = e
            _capture_with_context(e, self.effect_id, sentry_ctx)
            logger.error(
                "Effect %s failed on frame %d: %s",
                self.effect_id,
                frame_index,
                type(e).__name__,
            )
            logger.debug("Effect %s exception detail: %s", self.effect_id, e)
            return frame.copy(), state_in
        finally:
            self.last_elapsed_ms = (time.monotonic() - t0) * 1000

        if self.last_elapsed_ms > EFFECT_WARN_MS:
            logger.warning(
                "Effect %s took %.0fms (>%dms warn threshold) on frame %d",
                self.effect_id,
                self.last_elapsed_ms,
                EFFECT_WARN_MS,
                frame_index,
            )

        try:
            if not isinstance(wet_frame, np.ndarray):
                raise TypeError(
                    f"Effect returned {type(wet_frame).__name__}, expected ndarray"
                )
            if wet_frame.shape != frame.shape:
                raise ValueError(
                    f"Effect returned shape {wet_frame.shape}, expected {frame.shape}"
                )
            if wet_frame.dtype != np.uint8:
                wet_frame = np.clip(wet_frame, 0, 255).astype(np.uint8)
        except (TypeError, ValueError) as e:
            self.last_error = e
            _capture_with_context(e, self.effect_id, sentry_ctx)
            logger.error(
                "Effect %s produced invalid output on frame %d: %s",
                self.effect_id,
                frame_index,
                type(e).__name__,
            )
            logger.debug("Effect %s output error detail: %s", self.effect_id, e)
            return frame.copy(), state_in

        if mix >= 1.0:
            return wet_frame, state_out
        output = np.clip(
            frame.astype(np.float32) * (1.0 - mix) + wet_frame.astype(np.float32) * mix,
            0,
            255,
        ).astype(np.uint8)
        return output, state_out
