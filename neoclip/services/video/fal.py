from typing import Any, Dict, Optional

from neoclip.models.shared import GenerationStatus
from neoclip.services.video.common import VideoProviderAdapter


class FalMinimaxAdapter(VideoProviderAdapter):
    """MiniMax video-01 through the FAL queue API. Expensive paid tier backup."""

    key = "fal"
    name = "MiniMax-FAL"
    cost = 0.50
    create_url = "https://queue.fal.run/fal-ai/minimax/video-01"
    auth_scheme = "Key"

    status_map = {
        "in_queue": GenerationStatus.QUEUED,
        "in_progress": GenerationStatus.PROCESSING,
        "completed": GenerationStatus.COMPLETED,
        "succeeded": GenerationStatus.COMPLETED,
        "failed": GenerationStatus.FAILED,
        "error": GenerationStatus.FAILED,
    }
    task_id_paths = (("request_id",),)
    result_paths = (
        ("video", "url"),
        ("output", "video_url"),
        ("video_url",),
        ("result", "video", "url"),
    )
    error_paths = (("error",), ("detail",), ("message",))

    def build_body(self, prompt: str, duration: int, resolution: str) -> Dict[str, Any]:
        return {"prompt": prompt, "prompt_optimizer": True}

    def status_url(self, provider_task_id: str) -> str:
        return f"{self.create_url}/requests/{provider_task_id}/status"

    def result_url(self, provider_task_id: str) -> Optional[str]:
        # The status endpoint only reports state; the video lives here
        return f"{self.create_url}/requests/{provider_task_id}"

    def extract_progress(self, data: Dict[str, Any], status: GenerationStatus) -> int:
        if status == GenerationStatus.COMPLETED:
            return 100
        if status == GenerationStatus.QUEUED:
            return 15
        if data.get("logs"):
            return 60
        return 40
