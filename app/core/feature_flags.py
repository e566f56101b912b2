import os


def _as_bool(val: str | None, default: bool = True) -> bool:
    if val is None:
        return default
    v = val.strip().lower()
    return v in {"1", "true", "yes", "on"}


class DashboardFeatures:
    patterns: bool
    leave_stats: bool
    export: bool

    def __init__(self) -> None:
        self.patterns = _as_bool(os.getenv("FEATURE_DASHBOARD_PATTERNS"), True)
        self.leave_stats = _as_bool(os.getenv("FEATURE_DASHBOARD_LEAVE_STATS"), True)
        self.export = _as_bool(os.getenv("FEATURE_DASHBOARD_EXPORT"), True)


features = DashboardFeatures()
