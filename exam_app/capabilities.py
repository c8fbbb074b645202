"""
Device capabilities consumed by the proctoring monitor.

The monitor only talks to these small interfaces, so detection backends can be
swapped (native detector, ML fallback, test doubles) without touching its rules.
"""
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

FULLSCREEN_TOLERANCE_PX = 10


@dataclass(frozen=True)
class FaceResult:
    ok: bool
    ratio: float = 0.0


class FaceDetector:
    """Reports whether exactly one face is visible on the preview feed."""
    kind = "abstract"

    def detect(self):
        raise NotImplementedError

    def stop(self):
        pass


class CallableFaceDetector(FaceDetector):
    """
    Adapts a function returning a list of face boxes ``(width, height)`` relative
    to the frame. Exactly one box means a face is present; its area is the ratio.
    """

    def __init__(self, detect_faces, kind="native", on_stop=None):
        self._detect_faces = detect_faces
        self.kind = kind
        self._on_stop = on_stop

    def detect(self):
        faces = self._detect_faces()
        if not isinstance(faces, (list, tuple)) or len(faces) != 1:
            return FaceResult(ok=False)
        width, height = faces[0]
        return FaceResult(ok=True, ratio=max(0.0, float(width) * float(height)))

    def stop(self):
        if self._on_stop:
            self._on_stop()


def select_face_detector(native_factory=None, fallback_factory=None):
    """
    Picks the native detector when it can be built and answers a sanity check,
    otherwise the fallback. Raises RuntimeError when neither is available.
    """
    if native_factory is not None:
        try:
            detector = native_factory()
            detector.detect()
            logger.info("face_detector_selected kind=%s", detector.kind)
            return detector
        except Exception as e:
            logger.info("native face detector unavailable: %s", e)

    if fallback_factory is None:
        raise RuntimeError("Face detection not available")
    detector = fallback_factory()
    logger.info("face_detector_selected kind=%s", detector.kind)
    return detector


class FullscreenSensor:
    def is_fullscreen(self):
        raise NotImplementedError


class ViewportFullscreenSensor(FullscreenSensor):
    """
    Fullscreen if the fullscreen API reports an element, or if the viewport
    matches the screen within a few pixels (OS-level fullscreen, F11).
    """

    def __init__(self, api_active, viewport_size, screen_size, tolerance=FULLSCREEN_TOLERANCE_PX):
        self._api_active = api_active
        self._viewport_size = viewport_size
        self._screen_size = screen_size
        self.tolerance = tolerance

    def is_fullscreen(self):
        if self._api_active():
            return True
        vw, vh = self._viewport_size()
        sw, sh = self._screen_size()
        return abs(vw - sw) <= self.tolerance and abs(vh - sh) <= self.tolerance


class CameraTrack:
    """Liveness of the camera video track."""

    def __init__(self, ready_state=lambda: "live", enabled=lambda: True, on_stop=None):
        self._ready_state = ready_state
        self._enabled = enabled
        self._on_stop = on_stop

    def is_live(self):
        return self._ready_state() == "live" and bool(self._enabled())

    def stop(self):
        if self._on_stop:
            self._on_stop()


@dataclass
class Capabilities:
    face_detector: FaceDetector
    fullscreen: FullscreenSensor
    camera: CameraTrack
