import re
from typing import Any, Dict

from neoclip.models.shared import GenerationStatus
from neoclip.services.video.common import VideoProviderAdapter

_PERCENT_PATTERN = re.compile(r"(\d{1,3})%")


class ReplicateWanAdapter(VideoProviderAdapter):
    """Wan-2.1 text-to-video on Replicate. Cheapest option, free tier primary."""

    key = "wan"
    name = "Wan-2.1"
    cost = 0.0008
    create_url = "https://api.replicate.com/v1/predictions"
    auth_scheme = "Bearer"

    MODEL_VERSION = "wan-lab/wan2.1-t2v-1.3b:e8c37be16be5e3bb950f55e0d73d1e87e4be5a47"
    FPS = 24
    MAX_SECONDS = 10

    status_map = {
        "starting": GenerationStatus.QUEUED,
        "processing": GenerationStatus.PROCESSING,
        "succeeded": GenerationStatus.COMPLETED,
        "failed": GenerationStatus.FAILED,
        "canceled": GenerationStatus.FAILED,
    }
    task_id_paths = (("id",),)
    # output is a list of URLs on current versions, a bare string on older ones
    result_paths = (("output", 0), ("output",))
    error_paths = (("error",), ("detail",))

    def build_body(self, prompt: str, duration: int, resolution: str) -> Dict[str, Any]:
        return {
            "version": self.MODEL_VERSION,
            "input": {
                "prompt": prompt,
                "num_frames": min(duration, self.MAX_SECONDS) * self.FPS,
                "guidance_scale": 7.5,
                "num_inference_steps": 50,
            },
        }

    def status_url(self, provider_task_id: str) -> str:
        return f"{self.create_url}/{provider_task_id}"

    def extract_progress(self, data: Dict[str, Any], status: GenerationStatus) -> int:
        if status == GenerationStatus.COMPLETED:
            return 100
        if status == GenerationStatus.QUEUED:
            return 10
        # Prediction logs carry the sampler's progress bar, latest line last
        logs = data.get("logs")
        if isinstance(logs, str):
            matches = _PERCENT_PATTERN.findall(logs)
            if matches:
                return min(int(matches[-1]), 99)
        return 40
