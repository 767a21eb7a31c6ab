"""Pydantic schemas for the plan/cost policy API."""

from pydantic import BaseModel, Field

from src.cr_common.enums import ImageQuality, OperationKind, VideoModel
from src.cr_policy.domain.plans import Entitlement


class CostRequest(BaseModel):
    kind: OperationKind
    quantity: float = Field(..., gt=0, description="Image/file count, or video seconds")
    plan: str | None = None
    quality: ImageQuality = ImageQuality.BASIC
    model: VideoModel | None = None


class CostResponse(BaseModel):
    kind: OperationKind
    credits: int


class PlanView(BaseModel):
    plan: str
    included_credits: int
    daily_credits_cap: int | None
    allowed_video_models: list[str]
    max_video_duration: int
    priority_queue: bool
    download_formats: list[str]
    styles: list[str]
    image_qualities: list[str]
    fps_max: int | None
    aspect_ratios: list[str]

    @classmethod
    def build(
        cls,
        plan: str,
        ent: Entitlement,
        included: int,
        daily_cap: int | None,
    ) -> "PlanView":
        return cls(
            plan=plan,
            included_credits=included,
            daily_credits_cap=daily_cap,
            allowed_video_models=[m.value for m in ent.allowed_video_models],
            max_video_duration=ent.max_video_duration,
            priority_queue=ent.priority_queue,
            download_formats=list(ent.download_formats),
            styles=list(ent.styles),
            image_qualities=[q.value for q in ent.image_qualities],
            fps_max=ent.fps_max,
            aspect_ratios=list(ent.aspect_ratios),
        )
