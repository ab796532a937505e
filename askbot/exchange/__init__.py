"""交换门面模块 - ask / notify / start_session / stop_session / shutdown。"""

from askbot.exchange.facade import InteractiveExchange
from askbot.exchange.results import AskOutcome, AskResult, StartResult, StopOutcome, StopResult

__all__ = ["InteractiveExchange", "AskOutcome", "AskResult", "StartResult", "StopOutcome", "StopResult"]
