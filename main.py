#!/usr/bin/env python3
"""
Cardio Monitor – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH     Camera resolution (default: 640x480)
    --fps INT            Target frame rate  (default: 30)
    --duration FLOAT     Maximum recording length in seconds (default: 60)
    --age INT            Subject age in years (default: 35)
    --camera-index INT   OpenCV camera index (default: 0)
    --no-flip            Disable horizontal mirror
    --show               Open a preview window with the sampled region
    --json PATH          Write the result record to a JSON file

Keyboard shortcuts (with --show)
--------------------------------
    q / ESC  – stop recording early and analyse
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
import time
from pathlib import Path

import cv2
import numpy as np

from cardio_monitor.camera import CameraSource
from cardio_monitor.config import DEFAULT_CONFIG
from cardio_monitor.models import Waveform
from cardio_monitor.pulse_detector import PulseDetector
from cardio_monitor.session import SessionController, SessionState

logger = logging.getLogger("cardio_monitor")

_WINDOW = "Cardio Monitor"
_GREEN = (0, 220, 80)
_WHITE = (255, 255, 255)
_DARK = (30, 30, 30)
_WAVEFORM_HEIGHT = 80


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Camera-based heart rate, HRV and cardiovascular risk screening",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="640x480",
                        help="Camera resolution, e.g. 640x480")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--duration", type=float, default=DEFAULT_CONFIG.max_duration_s,
                        help="Maximum recording length in seconds")
    parser.add_argument("--age", type=int, default=DEFAULT_CONFIG.default_age,
                        help="Subject age in years")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--no-flip", action="store_true",
                        help="Disable horizontal image flip")
    parser.add_argument("--show", action="store_true",
                        help="Show a preview window with the sampled region")
    parser.add_argument("--json", type=Path, default=None,
                        help="Write the result record to this JSON file")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def _draw_waveform(frame, waveform: Waveform) -> None:
    """Draw the pulse trace in a dark strip at the bottom of the frame."""
    h, w = frame.shape[:2]
    panel_top = max(0, h - _WAVEFORM_HEIGHT)
    cv2.rectangle(frame, (0, panel_top), (w, h), _DARK, -1)

    signal = waveform.filtered if waveform.filtered is not None else waveform.samples
    if len(signal) < 2:
        return
    sig = signal[-w:]
    mn, mx = sig.min(), sig.max()
    rng = mx - mn if mx != mn else 1.0
    norm = (sig - mn) / rng

    margin = 6
    plot_h = (h - panel_top) - 2 * margin
    xs = np.linspace(0, w - 1, len(norm)).astype(np.int32)
    ys = (panel_top + margin + (1.0 - norm) * plot_h).astype(np.int32)
    pts = np.column_stack([xs, ys])
    cv2.polylines(frame, [pts[:, None, :]], False, _GREEN, 1, cv2.LINE_AA)
    cv2.putText(frame, "PPG", (4, panel_top + 14), cv2.FONT_HERSHEY_SIMPLEX, 0.4, _WHITE, 1, cv2.LINE_AA)


def _draw_preview(frame, controller: SessionController) -> None:
    x, y, w, h = controller.detector.sampler.roi_for(frame.shape)
    cv2.rectangle(frame, (x, y), (x + w, y + h), _GREEN, 2)
    bpm = controller.detector.running_bpm
    label = f"{bpm:.0f} BPM" if bpm else "Measuring..."
    text = f"{label}  {controller.elapsed_s:4.1f}s"
    cv2.putText(frame, text, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, _WHITE, 2)
    _draw_waveform(frame, controller.detector.waveform())
    cv2.imshow(_WINDOW, frame)


def run(args: argparse.Namespace) -> int:
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 640x480.")
        return 1

    config = dataclasses.replace(
        DEFAULT_CONFIG,
        sample_rate_hz=float(args.fps),
        max_duration_s=args.duration,
    )
    camera = CameraSource(
        camera_index=args.camera_index,
        resolution=(res_w, res_h),
        fps=args.fps,
        flip_horizontal=not args.no_flip,
    )
    controller = SessionController(PulseDetector(config), config=config)

    with controller:
        if controller.attach(camera) is not SessionState.CAMERA_READY:
            print(f"Error: {controller.failure.reason}", file=sys.stderr)
            return 1
        controller.start(age=args.age)
        logger.info("Recording – keep your face still and well-lit.")

        if args.show:
            cv2.namedWindow(_WINDOW, cv2.WINDOW_NORMAL)
        last_log = 0.0
        try:
            while controller.state is SessionState.RECORDING:
                controller.pump()
                if controller.elapsed_s - last_log >= 1.0:
                    last_log = controller.elapsed_s
                    bpm = controller.detector.running_bpm
                    ts = time.strftime("%H:%M:%S")
                    if bpm:
                        print(f"[{ts}] BPM={bpm:.1f}  t={controller.elapsed_s:.0f}s")
                    else:
                        print(f"[{ts}] Waiting for signal…  t={controller.elapsed_s:.0f}s")
                if args.show:
                    frame = controller.detector.last_frame
                    if frame is not None:
                        _draw_preview(frame.copy(), controller)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (ord("q"), 27):          # q or ESC
                        logger.info("Stop requested by user.")
                        controller.stop()
        except KeyboardInterrupt:
            logger.info("Interrupted – analysing collected data.")
            controller.stop()
        finally:
            if args.show:
                cv2.destroyAllWindows()

    for warning in controller.warnings:
        logger.warning(warning)

    if controller.state is not SessionState.COMPLETE:
        reason = controller.failure.reason if controller.failure else "session did not complete"
        print(f"Error: {reason}", file=sys.stderr)
        return 1

    record = controller.result.to_dict()
    print(json.dumps(record, indent=2))
    if args.json:
        args.json.write_text(json.dumps(record, indent=2))
        logger.info("Saved result to %s", args.json)
    return 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
