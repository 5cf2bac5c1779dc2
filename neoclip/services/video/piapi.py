from typing import Any, Dict

from neoclip.models.shared import GenerationStatus
from neoclip.services.video.common import VideoProviderAdapter, dig


class PiapiLumaAdapter(VideoProviderAdapter):
    """Luma Dream Machine through PiAPI. Free tier fallback, paid tier primary."""

    key = "luma"
    name = "Luma"
    cost = 0.20
    create_url = "https://api.piapi.ai/api/v1/task"
    auth_scheme = "Bearer"

    status_map = {
        "pending": GenerationStatus.QUEUED,
        "queued": GenerationStatus.QUEUED,
        "staged": GenerationStatus.QUEUED,
        "processing": GenerationStatus.PROCESSING,
        "completed": GenerationStatus.COMPLETED,
        "succeeded": GenerationStatus.COMPLETED,
        "success": GenerationStatus.COMPLETED,
        "failed": GenerationStatus.FAILED,
        "error": GenerationStatus.FAILED,
    }
    task_id_paths = (("data", "task_id"), ("task_id",))
    status_paths = (("data", "status"), ("status",))
    # Unwatermarked asset first, then the watermarked one, then older flat shapes
    result_paths = (
        ("data", "output", "video_raw", "url"),
        ("data", "output", "video", "url"),
        ("data", "output", "video_url"),
        ("data", "video_url"),
        ("output", "video_raw", "url"),
        ("output", "video", "url"),
        ("output", "video_url"),
        ("video_url",),
    )
    error_paths = (("data", "error"), ("error",), ("message",))

    def build_body(self, prompt: str, duration: int, resolution: str) -> Dict[str, Any]:
        return {
            "model": "luma",
            "task_type": "video_generation",
            "input": {
                "prompt": prompt,
                "expand_prompt": True,
                "aspect_ratio": "16:9",
            },
        }

    def status_url(self, provider_task_id: str) -> str:
        return f"{self.create_url}/{provider_task_id}"

    def extract_progress(self, data: Dict[str, Any], status: GenerationStatus) -> int:
        if status == GenerationStatus.COMPLETED:
            return 100
        if status == GenerationStatus.QUEUED:
            return 15
        progress = dig(data, ("data", "progress"))
        if progress is None:
            progress = data.get("progress")
        if isinstance(progress, (int, float)) and progress > 0:
            return min(int(progress), 95)
        return 50
