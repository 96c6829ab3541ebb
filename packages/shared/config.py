from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WireModel(BaseModel):
    """Base for messages exchanged with the parent process (camelCase on the wire)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_json_line(self) -> str:
        return self.model_dump_json(by_alias=True)


class CropPercentages(WireModel):
    left: float = Field(ge=0, le=100)
    top: float = Field(ge=0, le=100)
    right: float = Field(ge=0, le=100)
    bottom: float = Field(ge=0, le=100)


class EmrConfig(WireModel):
    emr_key: str = Field(alias="emrKey")
    window_wild_card: str = Field(alias="windowWildCard")
    crop_percentages: CropPercentages = Field(alias="cropPercentages")


class ControlMessage(WireModel):
    config: List[EmrConfig]


class ReadySignal(WireModel):
    can_accept_config: bool = Field(default=True, alias="canAcceptConfig")


class OutputEvent(WireModel):
    emr_key: str = Field(alias="emrKey")
    window_title: str = Field(alias="windowTitle")
    screenshot: str  # base64 PNG, no data-URI prefix


class CaptureFailure(WireModel):
    type: str = "CAPTURE_FAILED"
    emr_key: Optional[str] = Field(default=None, alias="emrKey")
    window_title: Optional[str] = Field(default=None, alias="windowTitle")
    at: str
    reason: str


class WatcherSettings(BaseModel):
    poll_interval_ms: int = Field(default=2000, gt=0)
    capture_timeout_s: float = Field(default=10.0, gt=0)
    capture_scale: float = Field(default=0.5, gt=0, le=1)
    capture_dir: Optional[str] = None
    log_level: str = "INFO"

    def to_monitor_config(self) -> dict:
        return {
            "poll_interval_ms": self.poll_interval_ms,
        }

    def to_capture_config(self) -> dict:
        return {
            "capture_dir": self.capture_dir,
            "timeout_s": self.capture_timeout_s,
            "scale": self.capture_scale,
        }
