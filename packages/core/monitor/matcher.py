from __future__ import annotations

from typing import Optional, Sequence

from packages.shared.config import EmrConfig

from .types import MatchedWindow, WindowInfo


def find_config(title: str, configs: Sequence[EmrConfig]) -> Optional[EmrConfig]:
    """First config whose wildcard is a (case-sensitive) substring of title. Order matters."""
    for cfg in configs:
        if cfg.window_wild_card in title:
            return cfg
    return None


def match_window(window: WindowInfo, configs: Sequence[EmrConfig]) -> Optional[MatchedWindow]:
    cfg = find_config(window.title or "", configs)
    if cfg is None:
        return None
    return MatchedWindow(window=window, emr_key=cfg.emr_key, crop_percentages=cfg.crop_percentages)
