"""存活巡检模块。"""

from askbot.heartbeat.monitor import LivenessMonitor

__all__ = ["LivenessMonitor"]
